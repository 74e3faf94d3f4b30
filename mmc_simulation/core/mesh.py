"""
Tetrahedral mesh model and adjacency construction.

The mesh is read-only during a simulation. Element and node indices are
0-based; the face-neighbour table keeps the 1-based MMC convention, with
``0`` marking a mesh boundary face.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .constants import (
    CONTAINMENT_EPS,
    EDGE_PAIRS,
    FACE_NODES,
    FACE_OPPOSITE,
    QUADRATIC_CORNER_SHARE,
    QUADRATIC_EDGE_SHARE,
)
from .data_classes import Medium


FaceKey = Tuple[int, int, int]

_EDGE_A = np.array([a for a, _ in EDGE_PAIRS])
_EDGE_B = np.array([b for _, b in EDGE_PAIRS])


def build_face_neighbors(elements: np.ndarray) -> np.ndarray:
    """Build the face-neighbour table of a tetrahedral mesh.

    Each face is keyed by its sorted node triplet. The two elements sharing
    a triplet become neighbours; a triplet with a single owner is a mesh
    boundary.

    Parameters
    ----------
    elements : np.ndarray
        Element connectivity, shape (n_elements, 4), 0-based node indices.

    Returns
    -------
    np.ndarray, shape (n_elements, 4)
        1-based neighbour element id for each local face, 0 on the boundary.
    """
    elements = np.asarray(elements, dtype=np.int64)
    owners: Dict[FaceKey, List[Tuple[int, int]]] = {}

    for eid, elem in enumerate(elements):
        for face, local in enumerate(FACE_NODES):
            key = tuple(sorted(int(elem[i]) for i in local))
            owners.setdefault(key, []).append((eid, face))

    facenb = np.zeros((len(elements), 4), dtype=np.int64)
    for key, shared in owners.items():
        if len(shared) > 2:
            raise ValueError(f"Face {key} is shared by {len(shared)} elements - mesh is not manifold")
        if len(shared) == 2:
            (e1, f1), (e2, f2) = shared
            facenb[e1, f1] = e2 + 1
            facenb[e2, f2] = e1 + 1
    return facenb


def densify_quadratic(nodes: np.ndarray, elements: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Append one mid-edge node per unique undirected edge.

    Returns
    -------
    nodes : np.ndarray
        Original nodes followed by the new edge midpoints.
    edge_nodes : np.ndarray, shape (n_elements, 6)
        Index of the mid-edge node of each element edge, in ``EDGE_PAIRS``
        order.
    """
    nodes = np.asarray(nodes, dtype=float)
    elements = np.asarray(elements, dtype=np.int64)
    edge_index: Dict[Tuple[int, int], int] = {}
    midpoints = []
    edge_nodes = np.zeros((len(elements), len(EDGE_PAIRS)), dtype=np.int64)

    for eid, elem in enumerate(elements):
        for k, (a, b) in enumerate(EDGE_PAIRS):
            n1, n2 = sorted((int(elem[a]), int(elem[b])))
            pos = edge_index.get((n1, n2))
            if pos is None:
                pos = len(nodes) + len(midpoints)
                edge_index[(n1, n2)] = pos
                midpoints.append(0.5 * (nodes[n1] + nodes[n2]))
            edge_nodes[eid, k] = pos

    if midpoints:
        nodes = np.vstack([nodes, np.array(midpoints)])
    return nodes, edge_nodes


def quadratic_shape_functions(bary: np.ndarray) -> np.ndarray:
    """Values of the 10 quadratic tetrahedral shape functions.

    Corners first, ``L_i(2L_i - 1)``, then the mid-edge nodes in
    ``EDGE_PAIRS`` order, ``4 L_a L_b``. The values sum to one whenever the
    barycentric coordinates do.
    """
    bary = np.asarray(bary, dtype=float)
    return np.concatenate([bary * (2.0 * bary - 1.0), 4.0 * bary[_EDGE_A] * bary[_EDGE_B]])


class TetMesh:
    """Static tetrahedral mesh with precomputed per-face geometry.

    Parameters
    ----------
    nodes : array_like, shape (n_nodes, 3)
        Node coordinates in mesh units.
    elements : array_like, shape (n_elements, 4)
        0-based node indices of each tetrahedron.
    element_media : array_like, shape (n_elements,)
        Medium tag of each element. 0 is the background medium, negative
        tags mark exterior (external detector) elements.
    face_neighbors : array_like, optional
        Precomputed neighbour table (1-based, 0 = boundary). Built from
        ``elements`` when omitted.
    quadratic : array_like, optional
        Mid-edge node indices (n_elements, 6) of 10-node elements.
    """

    def __init__(
        self,
        nodes: np.ndarray,
        elements: np.ndarray,
        element_media: np.ndarray,
        face_neighbors: Optional[np.ndarray] = None,
        quadratic: Optional[np.ndarray] = None,
    ):
        self.nodes = np.asarray(nodes, dtype=float)
        self.elements = np.asarray(elements, dtype=np.int64)
        self.element_media = np.asarray(element_media, dtype=np.int64)

        if self.nodes.ndim != 2 or self.nodes.shape[1] != 3:
            raise ValueError(f"Expected nodes of shape (n, 3), got {self.nodes.shape}")
        if self.elements.ndim != 2 or self.elements.shape[1] != 4:
            raise ValueError(f"Expected elements of shape (n, 4), got {self.elements.shape}")
        if self.element_media.shape != (len(self.elements),):
            raise ValueError("element_media must have one tag per element")
        if self.elements.size and (self.elements.min() < 0 or self.elements.max() >= len(self.nodes)):
            raise ValueError("Element connectivity references missing nodes")

        if face_neighbors is None:
            face_neighbors = build_face_neighbors(self.elements)
        self.face_neighbors = np.asarray(face_neighbors, dtype=np.int64)
        if self.face_neighbors.shape != self.elements.shape:
            raise ValueError("face_neighbors must have shape (n_elements, 4)")

        self.quadratic = None if quadratic is None else np.asarray(quadratic, dtype=np.int64)
        self._precompute()

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_elements(self) -> int:
        return len(self.elements)

    def _precompute(self):
        pts = self.nodes[self.elements]  # (ne, 4, 3)
        ne = len(self.elements)

        self.volumes = np.abs(np.einsum(
            "ij,ij->i",
            pts[:, 1] - pts[:, 0],
            np.cross(pts[:, 2] - pts[:, 0], pts[:, 3] - pts[:, 0]),
        )) / 6.0
        self.centroids = pts.mean(axis=1)

        # Outward oriented face triplets, unit normals and plane offsets
        self.face_points = np.zeros((ne, 4, 3, 3))
        self.face_normals = np.zeros((ne, 4, 3))
        self.face_offsets = np.zeros((ne, 4))
        for j, (a, b, c) in enumerate(FACE_NODES):
            pa, pb, pc = pts[:, a], pts[:, b], pts[:, c]
            normal = np.cross(pb - pa, pc - pa)
            inward = np.einsum("ij,ij->i", normal, pts[:, FACE_OPPOSITE[j]] - pa) > 0.0
            normal[inward] = -normal[inward]
            pb_o = np.where(inward[:, None], pc, pb)
            pc_o = np.where(inward[:, None], pb, pc)
            length = np.linalg.norm(normal, axis=1, keepdims=True)
            length = np.where(length > 0, length, 1.0)
            normal = normal / length
            self.face_points[:, j, 0] = pa
            self.face_points[:, j, 1] = pb_o
            self.face_points[:, j, 2] = pc_o
            self.face_normals[:, j] = normal
            self.face_offsets[:, j] = np.einsum("ij,ij->i", normal, pa)

        edges = pts[:, [a for a, _ in EDGE_PAIRS]] - pts[:, [b for _, b in EDGE_PAIRS]]
        self.length_scale = np.linalg.norm(edges, axis=2).mean(axis=1)

        self.nodal_volumes = np.zeros(self.n_nodes)
        np.add.at(self.nodal_volumes, self.elements.ravel(), np.repeat(self.volumes / 4.0, 4))

        self.quadratic_volumes = None
        if self.quadratic is not None:
            if self.quadratic.shape != (ne, len(EDGE_PAIRS)):
                raise ValueError(f"quadratic must have shape ({ne}, {len(EDGE_PAIRS)})")
            self.quadratic_volumes = np.zeros(self.n_nodes)
            np.add.at(self.quadratic_volumes, self.elements.ravel(),
                      np.repeat(self.volumes * QUADRATIC_CORNER_SHARE, 4))
            np.add.at(self.quadratic_volumes, self.quadratic.ravel(),
                      np.repeat(self.volumes * QUADRATIC_EDGE_SHARE, len(EDGE_PAIRS)))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def element_nodes(self, elem: int) -> np.ndarray:
        """Return the (4, 3) node coordinates of an element."""
        return self.nodes[self.elements[elem]]

    def neighbors(self, elem: int) -> np.ndarray:
        return self.face_neighbors[elem]

    def medium_of(self, elem: int) -> int:
        return int(self.element_media[elem])

    def contains(self, elem: int, point: np.ndarray, tol: float = CONTAINMENT_EPS) -> bool:
        """Point-in-element test with a tolerance relative to element size."""
        signed = self.face_normals[elem] @ point - self.face_offsets[elem]
        return bool(np.all(signed <= tol * self.length_scale[elem]))

    def find_element(self, point: np.ndarray, tol: float = CONTAINMENT_EPS) -> Optional[int]:
        """Return the first element enclosing ``point``, or None."""
        point = np.asarray(point, dtype=float)
        signed = np.einsum("ijk,k->ij", self.face_normals, point) - self.face_offsets
        inside = np.all(signed <= tol * self.length_scale[:, None], axis=1)
        hits = np.flatnonzero(inside)
        return int(hits[0]) if hits.size else None

    def barycentric(self, elem: int, point: np.ndarray) -> np.ndarray:
        """Barycentric coordinates of ``point`` with respect to the element nodes."""
        p = self.element_nodes(elem)
        mat = np.column_stack([p[1] - p[0], p[2] - p[0], p[3] - p[0]])
        lam = np.linalg.solve(mat, np.asarray(point, dtype=float) - p[0])
        return np.array([1.0 - lam.sum(), lam[0], lam[1], lam[2]])

    def check_media(self, media: Sequence[Medium]):
        """Raise ValueError if an element tag has no entry in ``media``."""
        if not len(media):
            raise ValueError("Medium table is empty")
        if self.element_media.max(initial=0) >= len(media):
            raise ValueError(
                f"Element medium tag {int(self.element_media.max())} exceeds the "
                f"{len(media)} entries of the medium table"
            )

    def basis_nodes(self, basis_order: int) -> np.ndarray:
        """Nodes carrying the field of each element for a nodal basis.

        Returns the (n_elements, 4) connectivity for ``basis_order=1`` and the
        (n_elements, 10) corner plus mid-edge connectivity for ``basis_order=2``.
        """
        if basis_order == 2:
            if self.quadratic is None:
                raise ValueError("basis_order=2 needs a 10-node mesh, build it with TetMesh.to_quadratic()")
            return np.hstack([self.elements, self.quadratic])
        return self.elements

    def basis_volumes(self, basis_order: int) -> np.ndarray:
        """Volume associated with each field unit of the given basis order."""
        if basis_order == 0:
            return self.volumes
        if basis_order == 2:
            if self.quadratic_volumes is None:
                raise ValueError("basis_order=2 needs a 10-node mesh, build it with TetMesh.to_quadratic()")
            return self.quadratic_volumes
        return self.nodal_volumes

    def to_quadratic(self) -> "TetMesh":
        """Return a copy carrying 10-node (mid-edge) element data."""
        nodes, edge_nodes = densify_quadratic(self.nodes, self.elements)
        return TetMesh(nodes, self.elements, self.element_media, self.face_neighbors, edge_nodes)
