"""Unit tests for the bounding volume hierarchy.

Tests cover:
- Tree shape: leaf size, node count, depth
- Box containment at every node
- Empty input
- Flattened layout
- Traversal agreeing with a linear scan of every primitive
- Rays pointing away from every primitive
- Each primitive found from just above its surface; occlusion queries
"""

import numpy as np
import pytest
import taichi as ti


def _random_boxes(count, seed=0):
    from pathtracer.geometry.aabb import AABB

    rng = np.random.default_rng(seed)
    centers = rng.uniform(-10.0, 10.0, size=(count, 3))
    sizes = rng.uniform(0.1, 1.0, size=(count, 3))
    return [AABB(c - s, c + s) for c, s in zip(centers, sizes)]


class TestBuildBVH:
    """Tests for host-side construction."""

    def test_empty_returns_none(self):
        """Test that no primitives give no tree and an empty flat layout."""
        from pathtracer.geometry.bvh import build_bvh, flatten_bvh

        assert build_bvh([]) is None
        assert flatten_bvh(None).node_count == 0

    def test_single_primitive_is_leaf(self):
        """Test that one primitive builds a single leaf."""
        from pathtracer.geometry.aabb import AABB
        from pathtracer.geometry.bvh import build_bvh

        root = build_bvh([AABB((0, 0, 0), (1, 1, 1))])
        assert root.is_leaf
        assert root.primitives == (0,)
        assert root.depth() == 1

    def test_leaves_hold_at_most_two(self):
        """Test the leaf size limit and that every primitive appears once."""
        from pathtracer.geometry.bvh import MAX_LEAF_SIZE, build_bvh

        root = build_bvh(_random_boxes(37))
        for node in root.iter_nodes():
            if node.is_leaf:
                assert 1 <= len(node.primitives) <= MAX_LEAF_SIZE
        assert sorted(root.primitive_indices()) == list(range(37))

    def test_node_boxes_enclose_children(self):
        """Test that each internal box contains both child boxes."""
        from pathtracer.geometry.bvh import build_bvh

        boxes = _random_boxes(50, seed=3)
        root = build_bvh(boxes)
        for node in root.iter_nodes():
            if node.is_leaf:
                for i in node.primitives:
                    assert node.bbox.contains(boxes[i])
            else:
                assert node.bbox.contains(node.left.bbox)
                assert node.bbox.contains(node.right.bbox)

    def test_depth_is_logarithmic(self):
        """Test that a median split keeps the tree balanced."""
        from pathtracer.geometry.bvh import build_bvh

        root = build_bvh(_random_boxes(256, seed=5))
        # 256 primitives in leaves of 2 need 128 leaves, 7 levels plus the root
        assert root.depth() == 8
        assert root.node_count() == 255

    def test_flatten_preorder(self):
        """Test that the flat layout keeps children after their parent."""
        from pathtracer.geometry.bvh import build_bvh, flatten_bvh

        root = build_bvh(_random_boxes(20, seed=7))
        flat = flatten_bvh(root)
        assert flat.node_count == root.node_count()
        assert sorted(flat.leaf_primitives.tolist()) == list(range(20))
        for i in range(flat.node_count):
            if flat.prim_count[i] == 0:
                assert flat.left[i] > i
                assert flat.right[i] > i
            else:
                assert flat.left[i] == -1
                assert flat.right[i] == -1

    def test_flattened_boxes_do_not_shrink(self):
        """Test that float32 rounding never cuts into a node box."""
        from pathtracer.geometry.bvh import build_bvh, flatten_bvh

        root = build_bvh(_random_boxes(10, seed=11))
        flat = flatten_bvh(root)
        for i, node in enumerate(root.iter_nodes()):
            assert np.all(flat.bbox_min[i].astype(np.float64) <= node.bbox.minimum)
            assert np.all(flat.bbox_max[i].astype(np.float64) >= node.bbox.maximum)

    def test_moving_sphere_box_covers_both_ends(self):
        """Test that a moving sphere is bounded over the whole time range."""
        from pathtracer.scene.primitives import SphereInfo

        sphere = SphereInfo(
            center=(0.0, 0.0, 0.0), radius=0.5, material_id=0, center_end=(0.0, 3.0, 0.0)
        )
        box = sphere.bounding_box(0.0, 1.0)
        assert box.minimum[1] == pytest.approx(-0.5)
        assert box.maximum[1] == pytest.approx(3.5)


class TestBVHTraversal:
    """Tests for device traversal against a linear scan."""

    def _build_sphere_field(self, count, seed):
        from pathtracer.scene.manager import SceneManager

        rng = np.random.default_rng(seed)
        scene = SceneManager()
        mat = scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        for _ in range(count):
            center = tuple(rng.uniform(-5.0, 5.0, size=3))
            scene.add_sphere(center, float(rng.uniform(0.2, 0.8)), mat)
        return scene, scene.build()

    def test_matches_linear_scan(self):
        """Test that BVH and brute force agree on hit, t and primitive."""
        from pathtracer.core.ray import make_ray, vec3
        from pathtracer.core.sampler import next_float, random_unit_vector, sample_state
        from pathtracer.scene.intersection import intersect_scene, intersect_scene_linear

        self._build_sphere_field(60, seed=1)
        n = 512
        bvh_hit = ti.field(dtype=ti.i32, shape=n)
        lin_hit = ti.field(dtype=ti.i32, shape=n)
        bvh_t = ti.field(dtype=ti.f32, shape=n)
        lin_t = ti.field(dtype=ti.f32, shape=n)

        @ti.kernel
        def test_kernel():
            for i in range(n):
                s = sample_state(9, i, 0)
                x, s1 = next_float(s)
                y, s2 = next_float(s1)
                direction, s3 = random_unit_vector(s2)
                origin = vec3(12.0 * x - 6.0, 12.0 * y - 6.0, 9.0)
                ray = make_ray(origin, direction, 0.0)
                a, _sa = intersect_scene(ray, 0.001, 1000.0, s3)
                b, _sb = intersect_scene_linear(ray, 0.001, 1000.0, s3)
                bvh_hit[i] = a.primitive_id
                lin_hit[i] = b.primitive_id
                bvh_t[i] = a.t
                lin_t[i] = b.t

        test_kernel()
        assert np.array_equal(bvh_hit.to_numpy(), lin_hit.to_numpy())
        assert np.allclose(bvh_t.to_numpy(), lin_t.to_numpy(), atol=1e-5)
        # The setup must actually produce hits
        assert np.count_nonzero(bvh_hit.to_numpy() >= 0) > 0

    def test_ray_pointing_away_misses(self):
        """Test that a ray leaving the scene bounds hits nothing."""
        from pathtracer.core.ray import make_ray, vec3
        from pathtracer.scene.intersection import intersect_scene

        self._build_sphere_field(30, seed=2)
        hit = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            ray = make_ray(vec3(0.0, 20.0, 0.0), vec3(0.0, 1.0, 0.0), 0.0)
            rec, _s = intersect_scene(ray, 0.001, 1000.0, ti.u32(1))
            hit[None] = rec.hit

        test_kernel()
        assert hit[None] == 0

    def test_empty_scene_never_hits(self):
        """Test that an empty build answers every query with a miss."""
        from pathtracer.core.ray import make_ray, vec3
        from pathtracer.scene.intersection import intersect_scene
        from pathtracer.scene.manager import SceneManager

        built = SceneManager().build()
        assert built.is_empty
        hit = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            ray = make_ray(vec3(0.0, 0.0, 5.0), vec3(0.0, 0.0, -1.0), 0.0)
            rec, _s = intersect_scene(ray, 0.001, 1000.0, ti.u32(1))
            hit[None] = rec.hit

        test_kernel()
        assert hit[None] == 0

    def test_closest_of_stacked_spheres(self):
        """Test that the nearest of several spheres along a ray is reported."""
        from pathtracer.core.ray import make_ray, vec3
        from pathtracer.scene.intersection import intersect_scene
        from pathtracer.scene.manager import SceneManager

        scene = SceneManager()
        mat = scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        for z in (-8.0, -4.0, 0.0, 4.0):
            scene.add_sphere((0.0, 0.0, z), 1.0, mat)
        scene.build()

        prim = ti.field(dtype=ti.i32, shape=())
        t_val = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            ray = make_ray(vec3(0.0, 0.0, 10.0), vec3(0.0, 0.0, -1.0), 0.0)
            rec, _s = intersect_scene(ray, 0.001, 1000.0, ti.u32(1))
            prim[None] = rec.primitive_id
            t_val[None] = rec.t

        test_kernel()
        assert prim[None] == 3
        assert t_val[None] == pytest.approx(5.0, abs=1e-4)

    def test_every_primitive_found_at_its_surface(self):
        """Test that a query starting just above each sphere reports that sphere."""
        from pathtracer.core.ray import make_ray, vec3
        from pathtracer.scene.intersection import intersect_scene
        from pathtracer.scene.manager import SceneManager

        scene = SceneManager()
        mat = scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
        tops = []
        for i in range(8):
            for k in range(8):
                center = (3.0 * i, 0.0, 3.0 * k)
                scene.add_sphere(center, 1.0, mat)
                tops.append((center[0], 1.01, center[2]))
        scene.build()

        n = len(tops)
        origins = ti.Vector.field(3, dtype=ti.f32, shape=n)
        origins.from_numpy(np.array(tops, dtype=np.float32))
        prim = ti.field(dtype=ti.i32, shape=n)
        t_val = ti.field(dtype=ti.f32, shape=n)

        @ti.kernel
        def test_kernel():
            for i in range(n):
                ray = make_ray(origins[i], vec3(0.0, -1.0, 0.0), 0.0)
                rec, _s = intersect_scene(ray, 0.001, 1000.0, ti.u32(1))
                prim[i] = rec.primitive_id
                t_val[i] = rec.t

        test_kernel()
        assert prim.to_numpy().tolist() == list(range(n))
        assert np.allclose(t_val.to_numpy(), 0.01, atol=1e-3)

    def test_any_hit_query(self):
        """Test the occlusion query against blocked and clear segments."""
        from pathtracer.core.ray import make_ray, vec3
        from pathtracer.scene.intersection import intersect_scene_any
        from pathtracer.scene.manager import SceneManager

        scene = SceneManager()
        scene.add_lambertian_sphere((0.0, 0.0, -5.0), 1.0, (0.5, 0.5, 0.5))
        scene.build()
        blocked = ti.field(dtype=ti.i32, shape=())
        short = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            ray = make_ray(vec3(0.0, 0.0, 0.0), vec3(0.0, 0.0, -1.0), 0.0)
            a, _sa = intersect_scene_any(ray, 0.001, 1000.0, ti.u32(1))
            b, _sb = intersect_scene_any(ray, 0.001, 3.0, ti.u32(1))
            blocked[None] = a
            short[None] = b

        test_kernel()
        assert blocked[None] == 1
        assert short[None] == 0

    def test_any_hit_agrees_with_closest_hit(self):
        """Test that the occlusion query reports a blocker exactly when a closest hit exists."""
        from pathtracer.core.ray import make_ray, vec3
        from pathtracer.core.sampler import next_float, random_unit_vector, sample_state
        from pathtracer.scene.intersection import intersect_scene, intersect_scene_any

        self._build_sphere_field(60, seed=4)
        n = 512
        any_hit = ti.field(dtype=ti.i32, shape=n)
        closest_hit = ti.field(dtype=ti.i32, shape=n)

        @ti.kernel
        def test_kernel():
            for i in range(n):
                s = sample_state(11, i, 0)
                x, s1 = next_float(s)
                y, s2 = next_float(s1)
                direction, s3 = random_unit_vector(s2)
                ray = make_ray(vec3(12.0 * x - 6.0, 12.0 * y - 6.0, 9.0), direction, 0.0)
                a, _sa = intersect_scene_any(ray, 0.001, 8.0, s3)
                b, _sb = intersect_scene(ray, 0.001, 8.0, s3)
                any_hit[i] = a
                closest_hit[i] = b.hit

        test_kernel()
        assert np.array_equal(any_hit.to_numpy(), closest_hit.to_numpy())
        hits = np.count_nonzero(closest_hit.to_numpy())
        assert 0 < hits < n
