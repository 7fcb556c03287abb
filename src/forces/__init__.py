"""
===============================================================================
ORBITDYN - Force Models
===============================================================================
Accelerations acting on the spacecraft for the numerical propagator.

Modules:
    base       -- ForceModel interface
    gravity    -- Central attraction and J2 zonal harmonic
    drag       -- Exponential atmosphere and isotropic (cannonball) drag
    radiation  -- Isotropic solar radiation pressure with cylindrical shadow
    maneuvers  -- Event-triggered impulsive maneuvers
===============================================================================
"""
