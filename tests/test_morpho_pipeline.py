import unittest

import numpy as np
import trimesh

from morphomesh.core.delaunay_triangulator import DelaunayTriangulator
from morphomesh.core.errors import MeshIndexError, MeshInputError
from morphomesh.core.mesh_loader import MeshData
from morphomesh.core.morpho_pipeline import MorphoPipeline
from morphomesh.core.orientation_classifier import orientation_levels


def _sphere_mesh(offset=(0.0, 0.0, 0.0)) -> MeshData:
    mesh = trimesh.creation.icosphere(subdivisions=2)
    return MeshData(vertices=mesh.vertices + np.asarray(offset), faces=mesh.faces, unit="mm")


def _height_field_record(n: int = 8) -> dict:
    xs, ys = np.meshgrid(np.linspace(-1.0, 1.0, n), np.linspace(-1.0, 1.0, n))
    zs = 0.1 * np.sin(2.0 * xs) + 0.05 * ys ** 2
    pts = [
        {"x": float(x), "y": float(y), "z": float(z)}
        for x, y, z in zip(xs.reshape(-1), ys.reshape(-1), zs.reshape(-1))
    ]
    return {"vertices": pts, "unit": "mm"}


class TestMorphoPipeline(unittest.TestCase):
    def test_load_mesh_and_buffers(self):
        pipeline = MorphoPipeline(center=False)
        data = pipeline.load(_sphere_mesh())
        t = data.n_faces

        buffers = pipeline.render_buffers()
        self.assertEqual(buffers.unwrapped_vertices.shape, (9 * t,))
        self.assertEqual(buffers.unwrapped_normals.shape, (9 * t,))
        self.assertEqual(buffers.curvature.shape, (3 * t,))
        self.assertEqual(buffers.orientation.shape, (3 * t,))
        self.assertEqual(buffers.n_corners, 3 * t)
        for arr in buffers.as_dict().values():
            self.assertEqual(arr.dtype, np.float32)

        np.testing.assert_allclose(np.linalg.norm(pipeline.vertex_normals, axis=1), 1.0, atol=1e-9)
        self.assertEqual(len(pipeline.adjacency), data.n_vertices)
        self.assertEqual(pipeline.orientation.shape, (data.n_vertices,))
        levels = orientation_levels()
        self.assertTrue(np.all(np.min(np.abs(pipeline.orientation[:, None] - levels), axis=1) < 1e-12))

    def test_model_area_and_summary(self):
        mesh = trimesh.creation.icosphere(subdivisions=2)
        pipeline = MorphoPipeline(center=False)
        pipeline.load(MeshData(vertices=mesh.vertices, faces=mesh.faces))

        self.assertAlmostEqual(pipeline.model_area(), 2.0 * mesh.area, places=9)
        summary = pipeline.summary()
        self.assertEqual(summary["faces"], len(mesh.faces))
        self.assertFalse(summary["triangulated"])
        self.assertAlmostEqual(summary["surface_area"], mesh.area, places=9)
        self.assertEqual(summary["curvature"]["non_finite"], 0)
        self.assertAlmostEqual(summary["aabb"]["width"], float(mesh.extents[0]))

    def test_load_centers_vertices(self):
        pipeline = MorphoPipeline(center=True)
        source = _sphere_mesh(offset=(10.0, -4.0, 2.5))
        expected_center = source.vertices.mean(axis=0)
        data = pipeline.load(source)

        np.testing.assert_allclose(data.vertices.mean(axis=0), 0.0, atol=1e-9)
        np.testing.assert_allclose(pipeline.summary()["center_offset"], expected_center)
        # caller's mesh is left as is
        np.testing.assert_allclose(source.vertices.mean(axis=0), expected_center)

    def test_point_cloud_record_is_triangulated(self):
        pipeline = MorphoPipeline(center=True, triangulator=DelaunayTriangulator(planar=True))
        data = pipeline.load(_height_field_record())

        self.assertEqual(data.n_vertices, 64)
        self.assertGreater(data.n_faces, 0)
        self.assertTrue(pipeline.summary()["triangulated"])
        self.assertIn("triangulate", pipeline.last_timings)
        self.assertGreater(pipeline.compute_opc(0.0), 0)

    def test_record_with_keyed_triangles(self):
        record = {
            "vertices": [
                {"x": 0.0, "y": 0.0, "z": 0.0},
                {"x": 1.0, "y": 0.0, "z": 0.0},
                {"x": 1.0, "y": 1.0, "z": 0.0},
                {"x": 0.0, "y": 1.0, "z": 0.0},
            ],
            "triangles": [{"i": 0, "j": 1, "k": 2}, {"i": 0, "j": 2, "k": 3}],
        }
        pipeline = MorphoPipeline(center=False)
        data = pipeline.load(record)

        self.assertEqual(data.n_faces, 2)
        np.testing.assert_array_equal(data.faces, [[0, 1, 2], [0, 2, 3]])
        self.assertFalse(pipeline.summary()["triangulated"])
        self.assertAlmostEqual(pipeline.model_area(), 2.0)

    def test_bad_triangle_records(self):
        verts = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
        pipeline = MorphoPipeline(center=False)
        with self.assertRaises(MeshInputError):
            pipeline.load({"vertices": verts, "triangles": [{"i": 0, "j": 1}]})
        with self.assertRaises(MeshInputError):
            pipeline.load({"vertices": verts, "triangles": [[0, 1, "a"]]})
        self.assertFalse(pipeline.is_loaded)

    def test_supplied_normals_are_used(self):
        mesh = _sphere_mesh()
        normals = np.tile([0.0, 0.0, 1.0], (mesh.n_vertices, 1))
        pipeline = MorphoPipeline(center=False)
        pipeline.load(MeshData(vertices=mesh.vertices, faces=mesh.faces, normals=normals))

        np.testing.assert_allclose(pipeline.vertex_normals, normals)
        np.testing.assert_allclose(pipeline.orientation, 0.0)
        self.assertEqual(pipeline.compute_opc(0.0), 1)

    def test_failed_load_keeps_previous_state(self):
        pipeline = MorphoPipeline(center=False)
        first = pipeline.load(_sphere_mesh())
        timings = dict(pipeline.last_timings)

        bad = {"vertices": [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]], "triangles": [[0, 1, 5]]}
        with self.assertRaises(MeshIndexError):
            pipeline.load(bad)
        with self.assertRaises(MeshInputError):
            pipeline.load({"vertices": [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]]})

        self.assertIs(pipeline.mesh, first)
        self.assertEqual(pipeline.last_timings, timings)

    def test_metrics_require_a_mesh(self):
        pipeline = MorphoPipeline()
        self.assertFalse(pipeline.is_loaded)
        with self.assertRaises(MeshInputError):
            pipeline.compute_opc()
        with self.assertRaises(MeshInputError):
            pipeline.render_buffers()

    def test_recompute_orientation(self):
        pipeline = MorphoPipeline(center=False)
        data = pipeline.load(_sphere_mesh())
        before = pipeline.orientation.copy()

        rot = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
        out = pipeline.recompute_orientation(rot)

        self.assertEqual(out.shape, (3 * data.n_faces,))
        self.assertEqual(out.dtype, np.float32)
        self.assertFalse(np.array_equal(before, pipeline.orientation))
        np.testing.assert_allclose(pipeline.rotation, rot)
        np.testing.assert_allclose(pipeline.render_buffers().orientation, out)

        pipeline.recompute_orientation(None)
        np.testing.assert_array_equal(pipeline.orientation, before)

    def test_opc_report_threshold(self):
        pipeline = MorphoPipeline(center=False)
        pipeline.load(_sphere_mesh())
        low = pipeline.opc_report(0.0)
        high = pipeline.opc_report(0.05)

        self.assertEqual(low.n_patches, high.n_patches)
        self.assertGreaterEqual(low.count, high.count)
        self.assertEqual(pipeline.compute_opc(0.05), high.count)


if __name__ == "__main__":
    unittest.main()
