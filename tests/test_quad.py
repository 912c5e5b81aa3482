"""Unit tests for quad (parallelogram) intersection.

Tests cover:
- Hits inside the parallelogram and misses outside it
- Planar (u, v) coordinates of the hit
- Normal orientation from both sides
- Rays parallel to the plane
- Normal and area helpers
"""

import pytest
import taichi as ti


class TestQuadIntersection:
    """Tests for hit_quad."""

    def test_hit_center(self):
        """Test a ray through the center of a unit square."""
        from pathtracer.geometry.quad import Quad, hit_quad, vec3

        hit = ti.field(dtype=ti.i32, shape=())
        t_val = ti.field(dtype=ti.f32, shape=())
        uv = ti.Vector.field(2, dtype=ti.f32, shape=())
        normal = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            quad = Quad(Q=vec3(0.0, 0.0, 0.0), u=vec3(1.0, 0.0, 0.0), v=vec3(0.0, 1.0, 0.0))
            rec = hit_quad(vec3(0.5, 0.5, 3.0), vec3(0.0, 0.0, -1.0), quad, 0.001, 100.0)
            hit[None] = rec.hit
            t_val[None] = rec.t
            uv[None] = ti.Vector([rec.u, rec.v])
            normal[None] = rec.normal

        test_kernel()
        assert hit[None] == 1
        assert t_val[None] == pytest.approx(3.0, abs=1e-5)
        assert uv[None][0] == pytest.approx(0.5, abs=1e-5)
        assert uv[None][1] == pytest.approx(0.5, abs=1e-5)
        # Faces the incoming ray
        assert normal[None][2] == pytest.approx(1.0, abs=1e-5)

    def test_uv_follows_edges(self):
        """Test that u measures along edge u and v along edge v."""
        from pathtracer.geometry.quad import Quad, hit_quad, vec3

        uv = ti.Vector.field(2, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            quad = Quad(Q=vec3(0.0, 0.0, 0.0), u=vec3(4.0, 0.0, 0.0), v=vec3(0.0, 2.0, 0.0))
            rec = hit_quad(vec3(1.0, 1.5, 3.0), vec3(0.0, 0.0, -1.0), quad, 0.001, 100.0)
            uv[None] = ti.Vector([rec.u, rec.v])

        test_kernel()
        assert uv[None][0] == pytest.approx(0.25, abs=1e-5)
        assert uv[None][1] == pytest.approx(0.75, abs=1e-5)

    def test_miss_outside_edges(self):
        """Test that points on the plane but outside the quad miss."""
        from pathtracer.geometry.quad import Quad, hit_quad, vec3

        hits = ti.field(dtype=ti.i32, shape=2)

        @ti.kernel
        def test_kernel():
            quad = Quad(Q=vec3(0.0, 0.0, 0.0), u=vec3(1.0, 0.0, 0.0), v=vec3(0.0, 1.0, 0.0))
            hits[0] = hit_quad(vec3(1.5, 0.5, 3.0), vec3(0.0, 0.0, -1.0), quad, 0.001, 100.0).hit
            hits[1] = hit_quad(vec3(0.5, -0.1, 3.0), vec3(0.0, 0.0, -1.0), quad, 0.001, 100.0).hit

        test_kernel()
        assert hits[0] == 0
        assert hits[1] == 0

    def test_back_side_hit(self):
        """Test that a hit from behind flips the normal and clears front_face."""
        from pathtracer.geometry.quad import Quad, hit_quad, vec3

        front_face = ti.field(dtype=ti.i32, shape=())
        normal = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            quad = Quad(Q=vec3(0.0, 0.0, 0.0), u=vec3(1.0, 0.0, 0.0), v=vec3(0.0, 1.0, 0.0))
            rec = hit_quad(vec3(0.5, 0.5, -3.0), vec3(0.0, 0.0, 1.0), quad, 0.001, 100.0)
            front_face[None] = rec.front_face
            normal[None] = rec.normal

        test_kernel()
        assert front_face[None] == 0
        assert normal[None][2] == pytest.approx(-1.0, abs=1e-5)

    def test_parallel_ray_misses(self):
        """Test that a ray in the plane direction never hits."""
        from pathtracer.geometry.quad import Quad, hit_quad, vec3

        hit = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            quad = Quad(Q=vec3(0.0, 0.0, 0.0), u=vec3(1.0, 0.0, 0.0), v=vec3(0.0, 1.0, 0.0))
            hit[None] = hit_quad(vec3(-1.0, 0.5, 1.0), vec3(1.0, 0.0, 0.0), quad, 0.001, 100.0).hit

        test_kernel()
        assert hit[None] == 0
