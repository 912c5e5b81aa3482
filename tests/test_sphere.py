"""Unit tests for sphere intersection.

Tests cover:
- Ray hitting sphere from outside (front face)
- Ray missing sphere
- Ray starting inside sphere (back face)
- Negative radius (hollow shell)
- Surface texture coordinates
- Moving sphere centers
"""

import pytest
import taichi as ti


class TestSphereIntersection:
    """Tests for ray-sphere intersection."""

    def test_hit_sphere_direct_hit(self):
        """Test ray hitting sphere head-on from outside."""
        from pathtracer.geometry.sphere import Sphere, hit_sphere, vec3

        hit = ti.field(dtype=ti.i32, shape=())
        t_val = ti.field(dtype=ti.f32, shape=())
        normal = ti.field(dtype=ti.math.vec3, shape=())
        front_face = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            sphere = Sphere(center=vec3(0.0, 0.0, 0.0), radius=1.0)
            record = hit_sphere(vec3(0.0, 0.0, 5.0), vec3(0.0, 0.0, -1.0), sphere, 0.001, 1000.0)
            hit[None] = record.hit
            t_val[None] = record.t
            normal[None] = record.normal
            front_face[None] = record.front_face

        test_kernel()
        assert hit[None] == 1
        # Should hit at z=1 (front of sphere), so t=4
        assert abs(t_val[None] - 4.0) < 1e-5
        assert abs(normal[None][2] - 1.0) < 1e-5
        assert front_face[None] == 1

    def test_hit_sphere_miss(self):
        """Test ray passing beside the sphere."""
        from pathtracer.geometry.sphere import Sphere, hit_sphere, vec3

        hit = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            sphere = Sphere(center=vec3(0.0, 0.0, 0.0), radius=1.0)
            record = hit_sphere(vec3(2.0, 0.0, 5.0), vec3(0.0, 0.0, -1.0), sphere, 0.001, 1000.0)
            hit[None] = record.hit

        test_kernel()
        assert hit[None] == 0

    def test_hit_sphere_from_inside(self):
        """Test that a ray from the center hits the far wall as a back face."""
        from pathtracer.geometry.sphere import Sphere, hit_sphere, vec3

        t_val = ti.field(dtype=ti.f32, shape=())
        normal = ti.field(dtype=ti.math.vec3, shape=())
        front_face = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            sphere = Sphere(center=vec3(0.0, 0.0, 0.0), radius=2.0)
            record = hit_sphere(vec3(0.0, 0.0, 0.0), vec3(1.0, 0.0, 0.0), sphere, 0.001, 1000.0)
            t_val[None] = record.t
            normal[None] = record.normal
            front_face[None] = record.front_face

        test_kernel()
        assert t_val[None] == pytest.approx(2.0, abs=1e-5)
        # Normal points back toward the ray origin
        assert normal[None][0] == pytest.approx(-1.0, abs=1e-5)
        assert front_face[None] == 0

    def test_interval_excludes_behind(self):
        """Test that intersections outside (t_min, t_max) are rejected."""
        from pathtracer.geometry.sphere import Sphere, hit_sphere, vec3

        hits = ti.field(dtype=ti.i32, shape=2)

        @ti.kernel
        def test_kernel():
            sphere = Sphere(center=vec3(0.0, 0.0, 0.0), radius=1.0)
            # Sphere is behind the ray
            rec0 = hit_sphere(vec3(0.0, 0.0, 5.0), vec3(0.0, 0.0, 1.0), sphere, 0.001, 1000.0)
            # t_max stops short of the sphere
            rec1 = hit_sphere(vec3(0.0, 0.0, 5.0), vec3(0.0, 0.0, -1.0), sphere, 0.001, 3.5)
            hits[0] = rec0.hit
            hits[1] = rec1.hit

        test_kernel()
        assert hits[0] == 0
        assert hits[1] == 0

    def test_negative_radius_flips_normal(self):
        """Test that a negative radius reports an inward outward-normal."""
        from pathtracer.geometry.sphere import Sphere, hit_sphere, vec3

        t_val = ti.field(dtype=ti.f32, shape=())
        front_face = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            sphere = Sphere(center=vec3(0.0, 0.0, 0.0), radius=-1.0)
            record = hit_sphere(vec3(0.0, 0.0, 5.0), vec3(0.0, 0.0, -1.0), sphere, 0.001, 1000.0)
            t_val[None] = record.t
            front_face[None] = record.front_face

        test_kernel()
        assert t_val[None] == pytest.approx(4.0, abs=1e-5)
        assert front_face[None] == 0

    def test_uv_in_unit_range(self):
        """Test that texture coordinates lie in [0, 1]."""
        from pathtracer.geometry.sphere import Sphere, hit_sphere, vec3

        uv = ti.Vector.field(2, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            sphere = Sphere(center=vec3(0.0, 0.0, 0.0), radius=1.0)
            record = hit_sphere(vec3(0.0, 5.0, 0.0), vec3(0.0, -1.0, 0.0), sphere, 0.001, 1000.0)
            uv[None] = ti.Vector([record.u, record.v])

        test_kernel()
        u, v = uv[None]
        assert 0.0 <= u <= 1.0
        # The north pole maps to v = 1
        assert v == pytest.approx(1.0, abs=1e-4)


class TestMovingSphere:
    """Tests for time-dependent sphere centers."""

    def test_center_interpolates(self):
        """Test linear interpolation of the center over the time range."""
        from pathtracer.geometry.sphere import sphere_center_at, vec3

        result = ti.Vector.field(3, dtype=ti.f32, shape=3)

        @ti.kernel
        def test_kernel():
            c0 = vec3(0.0, 0.0, 0.0)
            c1 = vec3(0.0, 2.0, 0.0)
            result[0] = sphere_center_at(c0, c1, 0.0, 1.0, 0.0)
            result[1] = sphere_center_at(c0, c1, 0.0, 1.0, 0.5)
            # Static spheres ignore the time
            result[2] = sphere_center_at(c0, c1, 0.0, 0.0, 0.5)

        test_kernel()
        assert result[0][1] == pytest.approx(0.0)
        assert result[1][1] == pytest.approx(1.0)
        assert result[2][1] == pytest.approx(0.0)
