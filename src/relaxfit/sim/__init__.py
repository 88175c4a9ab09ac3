from .noise import add_complex_gaussian_noise, add_gaussian_noise, add_rician_noise
from .simulation import sensitivity_analysis, simulate_single_voxel

__all__ = [
    "add_complex_gaussian_noise",
    "add_gaussian_noise",
    "add_rician_noise",
    "sensitivity_analysis",
    "simulate_single_voxel",
]
