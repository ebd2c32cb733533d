import unittest

import numpy as np
import trimesh

from morphomesh.core.adjacency_builder import adjacency_list
from morphomesh.core.errors import MeshIndexError, MeshInputError
from morphomesh.core.normal_estimator import face_normals, face_vectors, vertex_normals


class TestNormalEstimator(unittest.TestCase):
    def test_face_vectors_magnitude_is_twice_area(self):
        verts = np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0], [0.0, 3.0, 0.0]])
        fv = face_vectors(verts, [[0, 1, 2]])
        np.testing.assert_allclose(fv, [[0.0, 0.0, 6.0]])

    def test_face_normals_match_trimesh(self):
        mesh = trimesh.creation.icosphere(subdivisions=2)
        fn = face_normals(mesh.vertices, mesh.faces)

        np.testing.assert_allclose(np.linalg.norm(fn, axis=1), 1.0, atol=1e-12)
        np.testing.assert_allclose(fn, mesh.face_normals, atol=1e-9)

    def test_vertex_normals_on_sphere_are_radial(self):
        mesh = trimesh.creation.icosphere(subdivisions=3, radius=2.0)
        vn = vertex_normals(mesh.vertices, mesh.faces)
        radial = mesh.vertices / np.linalg.norm(mesh.vertices, axis=1, keepdims=True)

        np.testing.assert_allclose(np.linalg.norm(vn, axis=1), 1.0, atol=1e-12)
        self.assertGreater(float(np.min(np.sum(vn * radial, axis=1))), 0.999)

    def test_vertex_normals_area_weighting(self):
        # Big triangle facing +z, small triangle facing +x, sharing vertex 0.
        verts = np.array(
            [
                [0.0, 0.0, 0.0],
                [10.0, 0.0, 0.0],
                [0.0, 10.0, 0.0],
                [0.0, 0.1, 0.0],
                [0.0, 0.0, 0.1],
            ]
        )
        faces = np.array([[0, 1, 2], [0, 3, 4]])
        vn = vertex_normals(verts, faces)

        expected = np.array([0.01, 0.0, 100.0])
        np.testing.assert_allclose(vn[0], expected / np.linalg.norm(expected), atol=1e-12)
        np.testing.assert_allclose(vn[1], [0.0, 0.0, 1.0])
        np.testing.assert_allclose(vn[3], [1.0, 0.0, 0.0])

    def test_isolated_vertex_keeps_zero_normal(self):
        verts = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [5.0, 5.0, 5.0]])
        faces = np.array([[0, 1, 2]])
        vn = vertex_normals(verts, faces, adjacency_list(4, faces))

        np.testing.assert_allclose(vn[3], [0.0, 0.0, 0.0])
        self.assertFalse(np.isnan(vn).any())

    def test_per_vertex_face_normals_last_write_wins(self):
        verts = np.array(
            [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [7.0, 7.0, 7.0]]
        )
        faces = np.array([[0, 1, 2], [0, 3, 1]])
        out = face_normals(verts, faces, per_vertex=True)

        self.assertEqual(out.shape, (5, 3))
        np.testing.assert_allclose(out[2], [0.0, 0.0, 1.0])
        np.testing.assert_allclose(out[0], [0.0, 1.0, 0.0])
        np.testing.assert_allclose(out[1], [0.0, 1.0, 0.0])
        np.testing.assert_allclose(out[4], [0.0, 0.0, 0.0])

    def test_adjacency_length_mismatch(self):
        verts = np.zeros((3, 3))
        with self.assertRaises(MeshInputError):
            vertex_normals(verts, [[0, 1, 2]], adjacency=[[1, 2], [0, 2]])

    def test_bad_face_index(self):
        verts = np.zeros((3, 3))
        with self.assertRaises(MeshIndexError):
            vertex_normals(verts, [[0, 1, 3]])


if __name__ == "__main__":
    unittest.main()
