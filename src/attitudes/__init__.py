"""
===============================================================================
ORBITDYN - Attitudes
===============================================================================
Attitude value type, elementary laws and the event-driven law sequencer.

Modules:
    attitude  -- Attitude and the AttitudeProvider interface
    laws      -- Inertial, Sun pointing, local orbital frame, spin stabilized
    sequence  -- AttitudesSequence switching laws at propagation events
===============================================================================
"""
