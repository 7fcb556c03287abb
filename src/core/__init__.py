"""
===============================================================================
ORBITDYN - Core Utilities
===============================================================================
Value types and helpers shared by every other package.

Modules:
    constants      -- Physical constants and reference orbit values
    errors         -- Exception hierarchy
    quaternion     -- Scalar-first quaternions, SO(3) exp/log and Jacobians
    angular        -- Angular coordinates and Hermite interpolation
    frames         -- Inertial frames, Earth rotation, LVLH, analytic Sun
    orbits         -- PV coordinates and two-body relations
    time_span_map  -- Values attached to contiguous time spans
    parameters     -- Normalized parameter drivers
    config         -- YAML scenario configuration
===============================================================================
"""
