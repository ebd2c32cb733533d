import unittest

import numpy as np
import trimesh
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from morphomesh.core.adjacency_builder import adjacency_list
from morphomesh.core.errors import MeshInputError
from morphomesh.core.normal_estimator import vertex_normals
from morphomesh.core.opc_counter import (
    count_orientation_patches,
    model_area,
    opc,
    opc_patches,
    vertex_area_shares,
)
from morphomesh.core.orientation_classifier import surface_orientation

SQUARE = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]])
SQUARE_FACES = np.array([[0, 1, 2], [0, 2, 3]])


def _sphere_setup(subdivisions: int = 2):
    mesh = trimesh.creation.icosphere(subdivisions=subdivisions)
    verts = np.asarray(mesh.vertices)
    faces = np.asarray(mesh.faces)
    adj = adjacency_list(len(verts), faces)
    orient = surface_orientation(vertex_normals(verts, faces, adj))
    return verts, faces, adj, orient


def _same_bin_components(n: int, faces: np.ndarray, orient: np.ndarray) -> int:
    edges = np.concatenate([faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]])
    keep = orient[edges[:, 0]] == orient[edges[:, 1]]
    e = edges[keep]
    graph = coo_matrix((np.ones(len(e)), (e[:, 0], e[:, 1])), shape=(n, n))
    n_comp, _ = connected_components(graph, directed=False)
    return int(n_comp)


class TestModelArea(unittest.TestCase):
    def test_unit_square_is_twice_the_area(self):
        self.assertAlmostEqual(model_area(SQUARE, SQUARE_FACES), 2.0)

    def test_subdivision_keeps_area(self):
        verts = np.vstack([SQUARE, [[0.5, 0.5, 0.0]]])
        faces = np.array([[0, 1, 4], [1, 2, 4], [2, 3, 4], [3, 0, 4]])
        self.assertAlmostEqual(model_area(verts, faces), 2.0)

    def test_matches_trimesh_area(self):
        mesh = trimesh.creation.icosphere(subdivisions=2)
        self.assertAlmostEqual(model_area(mesh.vertices, mesh.faces), 2.0 * mesh.area, places=9)

    def test_vertex_shares_sum_to_model_area(self):
        mesh = trimesh.creation.icosphere(subdivisions=1)
        shares = vertex_area_shares(mesh.vertices, mesh.faces)
        self.assertAlmostEqual(float(shares.sum()), model_area(mesh.vertices, mesh.faces))


class TestOpcCounter(unittest.TestCase):
    def test_single_patch_square(self):
        adj = adjacency_list(4, SQUARE_FACES)
        orient = np.zeros(4)
        area = model_area(SQUARE, SQUARE_FACES)

        res = opc_patches(SQUARE, adj, orient, 0.5, area)
        self.assertEqual(res.n_patches, 1)
        self.assertAlmostEqual(float(res.patch_fractions[0]), 1.0)
        self.assertEqual(res.count, 1)
        self.assertEqual(int(res.patch_vertex_counts[0]), 4)

        # strict comparison
        self.assertEqual(count_orientation_patches(SQUARE, adj, orient, 1.0, area), 0)

    def test_two_bins_on_square(self):
        adj = adjacency_list(4, SQUARE_FACES)
        orient = np.array([0.0, 0.0, 3.0 / 7.0, 3.0 / 7.0])
        res = opc_patches(SQUARE, adj, orient, -1.0, 2.0)

        self.assertEqual(res.n_patches, 2)
        np.testing.assert_allclose(res.patch_bins, [0.0, 3.0 / 7.0])
        np.testing.assert_array_equal(res.patch_vertex_counts, [2, 2])

    def test_patches_are_same_bin_components(self):
        verts, faces, adj, orient = _sphere_setup()
        area = model_area(verts, faces)
        res = opc_patches(verts, adj, orient, -1.0, area)

        self.assertEqual(res.count, res.n_patches)
        self.assertEqual(res.n_patches, _same_bin_components(len(verts), faces, orient))
        self.assertEqual(int(res.patch_vertex_counts.sum()), len(verts))

    def test_count_is_monotone_in_threshold(self):
        verts, faces, adj, orient = _sphere_setup()
        area = model_area(verts, faces)
        counts = [
            opc(verts, adj, orient, thr, area)
            for thr in (0.0, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5)
        ]
        self.assertTrue(all(a >= b for a, b in zip(counts, counts[1:])))
        self.assertGreater(counts[0], 0)

    def test_exact_area_fractions_sum_to_one(self):
        verts, faces, adj, orient = _sphere_setup()
        area = model_area(verts, faces)
        res = opc_patches(verts, adj, orient, 0.0, area, exact_area=True, faces=faces)

        self.assertTrue(res.exact_area)
        self.assertAlmostEqual(float(res.patch_fractions.sum()), 1.0)
        self.assertEqual(res.count, int(np.count_nonzero(res.counted_mask)))
        # eight sectors around the pole, every one sizable
        self.assertGreaterEqual(opc_patches(verts, adj, orient, 0.01, area, exact_area=True, faces=faces).count, 8)

    def test_as_dict(self):
        adj = adjacency_list(4, SQUARE_FACES)
        res = opc_patches(SQUARE, adj, np.zeros(4), 0.0, 2.0)
        d = res.as_dict()
        self.assertEqual(d["count"], 1)
        self.assertEqual(d["n_patches"], 1)
        self.assertEqual(d["patch_vertex_counts"], [4])
        self.assertFalse(d["exact_area"])

    def test_validation(self):
        adj = adjacency_list(4, SQUARE_FACES)
        with self.assertRaises(MeshInputError):
            opc_patches(SQUARE, adj, np.zeros(12), 0.0, 2.0)
        with self.assertRaises(MeshInputError):
            opc_patches(SQUARE, adj[:3], np.zeros(4), 0.0, 2.0)
        with self.assertRaises(MeshInputError):
            opc_patches(SQUARE, adj, np.zeros(4), 0.0, 0.0)
        with self.assertRaises(MeshInputError):
            opc_patches(SQUARE, adj, np.zeros(4), 0.0, 2.0, exact_area=True)


if __name__ == "__main__":
    unittest.main()
