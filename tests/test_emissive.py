"""Unit tests for emissive materials, textures and isotropic scattering.

Tests cover:
- Diffuse light emission scaled by intensity
- One-sided lights emit only from the front face
- Zero intensity gives black
- Solid and checker textures
- Isotropic scattering covers the whole sphere
"""

import numpy as np
import pytest
import taichi as ti


class TestDiffuseLight:
    """Tests for diffuse light emission."""

    def test_emission_scaled_by_intensity(self):
        """Test that emission is color * intensity on both faces."""
        from pathtracer.materials.diffuse_light import add_diffuse_light_material, emit_diffuse_light, vec3

        idx = add_diffuse_light_material((1.0, 0.5, 0.25), intensity=4.0)
        result = ti.Vector.field(3, dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel(i: ti.i32):
            p = vec3(0.0, 0.0, 0.0)
            result[0] = emit_diffuse_light(i, 0.0, 0.0, p, 1)
            result[1] = emit_diffuse_light(i, 0.0, 0.0, p, 0)

        test_kernel(idx)
        assert list(result[0]) == pytest.approx([4.0, 2.0, 1.0])
        assert list(result[1]) == pytest.approx([4.0, 2.0, 1.0])

    def test_one_sided_back_is_dark(self):
        """Test that a one-sided light is black from behind."""
        from pathtracer.materials.diffuse_light import add_diffuse_light_material, emit_diffuse_light, vec3

        idx = add_diffuse_light_material((1.0, 1.0, 1.0), intensity=2.0, one_sided=True)
        result = ti.Vector.field(3, dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel(i: ti.i32):
            p = vec3(0.0, 0.0, 0.0)
            result[0] = emit_diffuse_light(i, 0.0, 0.0, p, 1)
            result[1] = emit_diffuse_light(i, 0.0, 0.0, p, 0)

        test_kernel(idx)
        assert list(result[0]) == pytest.approx([2.0, 2.0, 2.0])
        assert list(result[1]) == pytest.approx([0.0, 0.0, 0.0])

    def test_zero_intensity_is_black(self):
        """Test that intensity 0 is allowed and emits nothing."""
        from pathtracer.materials.diffuse_light import add_diffuse_light_material, emit_diffuse_light, vec3

        idx = add_diffuse_light_material((1.0, 1.0, 1.0), intensity=0.0)
        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel(i: ti.i32):
            result[None] = emit_diffuse_light(i, 0.0, 0.0, vec3(0.0, 0.0, 0.0), 1)

        test_kernel(idx)
        assert list(result[None]) == pytest.approx([0.0, 0.0, 0.0])

    def test_invalid_parameters_raise(self):
        """Test that negative intensity and colors are rejected."""
        from pathtracer.errors import ConstructionError
        from pathtracer.materials.diffuse_light import add_diffuse_light_material

        with pytest.raises(ConstructionError):
            add_diffuse_light_material((1.0, 1.0, 1.0), intensity=-1.0)
        with pytest.raises(ConstructionError):
            add_diffuse_light_material((1.0, -1.0, 1.0))
        with pytest.raises(ConstructionError):
            add_diffuse_light_material((1.0, 1.0, 1.0), texture_id=99)


class TestTextures:
    """Tests for solid and checker textures."""

    def test_solid_is_constant(self):
        """Test that a solid texture ignores position."""
        from pathtracer.materials.textures import add_solid_texture, texture_value, vec3

        tex = add_solid_texture((0.3, 0.6, 0.9))
        result = ti.Vector.field(3, dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel(t: ti.i32):
            result[0] = texture_value(t, 0.1, 0.2, vec3(1.0, 2.0, 3.0))
            result[1] = texture_value(t, 0.9, 0.8, vec3(-5.0, 0.0, 7.0))

        test_kernel(tex)
        assert list(result[0]) == pytest.approx([0.3, 0.6, 0.9])
        assert list(result[1]) == pytest.approx([0.3, 0.6, 0.9])

    def test_checker_alternates(self):
        """Test that neighbouring checker cells alternate colors."""
        from pathtracer.materials.textures import add_checker_texture, texture_value, vec3

        tex = add_checker_texture((1.0, 1.0, 1.0), (0.0, 0.0, 0.0), scale=1.0)
        result = ti.Vector.field(3, dtype=ti.f32, shape=2)

        @ti.kernel
        def test_kernel(t: ti.i32):
            # sin(1)^3 > 0 and sin(1)^2 * sin(-1) < 0
            result[0] = texture_value(t, 0.0, 0.0, vec3(1.0, 1.0, 1.0))
            result[1] = texture_value(t, 0.0, 0.0, vec3(1.0, 1.0, -1.0))

        test_kernel(tex)
        assert result[0][0] == pytest.approx(1.0)
        assert result[1][0] == pytest.approx(0.0)

    def test_checker_scale_must_be_positive(self):
        """Test that a zero checker scale is rejected."""
        from pathtracer.errors import ConstructionError
        from pathtracer.materials.textures import add_checker_texture

        with pytest.raises(ConstructionError):
            add_checker_texture((1.0, 1.0, 1.0), (0.0, 0.0, 0.0), scale=0.0)

    def test_texture_count_and_clear(self):
        """Test the texture counter."""
        from pathtracer.materials.textures import add_solid_texture, clear_textures, get_texture_count

        add_solid_texture((0.1, 0.1, 0.1))
        add_solid_texture((0.2, 0.2, 0.2))
        assert get_texture_count() == 2
        clear_textures()
        assert get_texture_count() == 0


class TestIsotropic:
    """Tests for isotropic scattering."""

    def test_uniform_over_sphere(self):
        """Test unit-length directions with mean near zero."""
        from pathtracer.core.sampler import sample_state
        from pathtracer.materials.isotropic import add_isotropic_material, scatter_isotropic_by_id, vec3

        idx = add_isotropic_material((0.5, 0.5, 0.5))
        n = 20000
        dirs = ti.Vector.field(3, dtype=ti.f32, shape=n)
        att = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel(m: ti.i32):
            for i in range(n):
                d, a, _s = scatter_isotropic_by_id(m, 0.0, 0.0, vec3(0.0, 0.0, 0.0), sample_state(8, i, 0))
                dirs[i] = d
                if i == 0:
                    att[None] = a

        test_kernel(idx)
        d = dirs.to_numpy()
        assert np.allclose(np.linalg.norm(d, axis=1), 1.0, atol=1e-4)
        assert np.all(np.abs(d.mean(axis=0)) < 0.03)
        # Both hemispheres are used
        assert np.count_nonzero(d[:, 1] < 0.0) > n // 3
        assert list(att[None]) == pytest.approx([0.5, 0.5, 0.5])

    def test_requires_one_source(self):
        """Test that exactly one of albedo and texture_id is required."""
        from pathtracer.errors import ConstructionError
        from pathtracer.materials.isotropic import add_isotropic_material

        with pytest.raises(ConstructionError):
            add_isotropic_material()
