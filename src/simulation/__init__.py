"""
===============================================================================
ORBITDYN - Simulation
===============================================================================
End-to-end scenarios built on the library.

Modules:
    scenarios  -- Attitude switching and orbit determination scenarios
===============================================================================
"""
