"""Ready-made scenes.

Each factory returns ``(SceneManager, CameraConfig)``; call
``scene.build()`` before rendering.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from prismtrace.core.integrator import render
    >>> from prismtrace.scene.presets import create_prism_scene
    >>>
    >>> scene, camera = create_prism_scene(image_width=320)
    >>> scene.build()
    >>> pixels = render(camera)
"""

import numpy as np

from prismtrace.camera.thin_lens import CameraConfig
from prismtrace.geometry.mesh import Mesh
from prismtrace.scene.manager import SceneManager

# =============================================================================
# Three Spheres Scene
# =============================================================================

GROUND_ALBEDO = (0.8, 0.8, 0.0)
CENTER_ALBEDO = (0.1, 0.2, 0.5)
METAL_ALBEDO = (0.8, 0.6, 0.2)
METAL_FUZZ = 0.3
GLASS_IOR = 1.5


def create_three_spheres_scene(
    image_width: int = 400,
    samples_per_pixel: int = 10,
    max_depth: int = 20,
) -> tuple[SceneManager, CameraConfig]:
    """Diffuse, glass and metal spheres resting on a large diffuse ground.

    The glass sphere holds an inverted inner sphere (index 1/1.5) so it
    renders as a hollow bubble.
    """
    scene = SceneManager()

    scene.add_lambertian_sphere((0.0, -100.5, -1.0), 100.0, GROUND_ALBEDO)
    scene.add_lambertian_sphere((0.0, 0.0, -1.2), 0.5, CENTER_ALBEDO)

    scene.add_dielectric_sphere((-1.0, 0.0, -1.0), 0.5, ior=GLASS_IOR)
    scene.add_dielectric_sphere((-1.0, 0.0, -1.0), 0.4, ior=1.0 / GLASS_IOR)
    scene.add_metal_sphere((1.0, 0.0, -1.0), 0.5, METAL_ALBEDO, fuzz=METAL_FUZZ)

    camera = CameraConfig(
        aspect_ratio=16.0 / 9.0,
        image_width=image_width,
        samples_per_pixel=samples_per_pixel,
        max_depth=max_depth,
        vfov=20.0,
        lookfrom=(-2.0, 2.0, 1.0),
        lookat=(0.0, 0.0, -1.0),
        vup=(0.0, 1.0, 0.0),
        defocus_angle=0.0,
        focus_dist=3.4,
    )
    return scene, camera


# =============================================================================
# Dispersive Prism Scene
# =============================================================================


def _outward(v0, v1, v2, center) -> tuple:
    """Order a face's vertices so its normal points away from center."""
    a, b, c = (np.asarray(v, dtype=np.float64) for v in (v0, v1, v2))
    normal = np.cross(b - a, c - a)
    if np.dot(normal, (a + b + c) / 3.0 - center) < 0.0:
        b, c = c, b
    return (tuple(a), tuple(b), tuple(c))


def triangular_prism(
    apex: tuple[float, float],
    base_left: tuple[float, float],
    base_right: tuple[float, float],
    x_min: float,
    x_max: float,
) -> Mesh:
    """Closed triangular prism extruded along the x axis.

    The cross-section is the triangle given by (y, z) points; every face is
    wound so its front side faces outward, which the dielectric relies on to
    tell entering rays from leaving ones.

    Returns:
        A mesh of 8 triangles (two end caps, two per rectangular side).
    """
    section = [apex, base_left, base_right]
    near = [np.array([x_min, y, z]) for y, z in section]
    far = [np.array([x_max, y, z]) for y, z in section]
    center = (sum(near) + sum(far)) / 6.0

    faces = [
        _outward(near[0], near[1], near[2], center),
        _outward(far[0], far[1], far[2], center),
    ]
    for i in range(3):
        j = (i + 1) % 3
        faces.append(_outward(near[i], near[j], far[j], center))
        faces.append(_outward(near[i], far[j], far[i], center))
    return Mesh.from_triangles(faces)


def create_prism_scene(
    glass: str = "sf10",
    image_width: int = 400,
    samples_per_pixel: int = 32,
    max_depth: int = 12,
) -> tuple[SceneManager, CameraConfig]:
    """A dispersive glass prism over a striped floor under the sky.

    Args:
        glass: Name of a Cauchy preset (see ``CAUCHY_PRESETS``).
        image_width: Output width in pixels.
        samples_per_pixel: Samples per pixel; also the number of
            wavelength strata.
        max_depth: Maximum scattering events per path.
    """
    scene = SceneManager()

    # Floor: two tiles of slightly different grey so refraction shifts are visible
    light_tile = scene.add_lambertian_material((0.75, 0.75, 0.75))
    dark_tile = scene.add_lambertian_material((0.35, 0.35, 0.35))
    floor_y = -0.5
    for k in range(8):
        x0 = -4.0 + k
        x1 = x0 + 1.0
        tile = light_tile if k % 2 == 0 else dark_tile
        scene.add_mesh(
            [
                ((x0, floor_y, 1.0), (x1, floor_y, 1.0), (x1, floor_y, -8.0)),
                ((x0, floor_y, 1.0), (x1, floor_y, -8.0), (x0, floor_y, -8.0)),
            ],
            tile,
        )

    prism_glass = scene.add_dispersive_material(glass)
    prism = triangular_prism(
        apex=(0.6, -2.5),
        base_left=(-0.45, -3.1),
        base_right=(-0.45, -1.9),
        x_min=-0.9,
        x_max=0.9,
    )
    scene.add_mesh(prism, prism_glass)

    scene.add_metal_sphere((1.6, 0.0, -3.5), 0.5, (0.9, 0.9, 0.9), fuzz=0.0)

    camera = CameraConfig(
        aspect_ratio=16.0 / 9.0,
        image_width=image_width,
        samples_per_pixel=samples_per_pixel,
        max_depth=max_depth,
        vfov=40.0,
        lookfrom=(0.0, 0.4, 1.0),
        lookat=(0.0, 0.0, -2.5),
        vup=(0.0, 1.0, 0.0),
        defocus_angle=0.0,
        focus_dist=3.5,
    )
    return scene, camera
