"""
===============================================================================
ORBITDYN - Event Detection
===============================================================================
Event detectors expose a continuous switching function g(state); the
propagators locate its sign changes and call back the detector, which
answers with an ``Action`` telling the propagator how to continue.

Modules:
    handlers     -- Action enum and reusable event handlers
    detectors    -- EventDetector base and concrete detectors
    event_state  -- Per-detector root search over propagation steps
===============================================================================
"""
