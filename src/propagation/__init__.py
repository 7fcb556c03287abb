"""
===============================================================================
ORBITDYN - Propagation
===============================================================================
Spacecraft state, propagators and the event detection machinery.

Modules:
    state       -- SpacecraftState value type
    propagator  -- AbstractPropagator event loop, analytical base class
    keplerian   -- Universal-variable Keplerian propagator
    integrators -- Dormand-Prince 5(4) stepping over scipy RK45
    numerical   -- Force-model propagator with variational equations
    ephemeris   -- Interpolated ephemerides and aggregated bounded propagators
    additional  -- Additional state providers
    events      -- Detectors, handlers and root finding
===============================================================================
"""
