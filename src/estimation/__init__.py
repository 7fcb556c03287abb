"""
===============================================================================
ORBITDYN - Orbit Determination
===============================================================================
Sequential (Kalman) orbit determination.

Modules:
    measurements     -- Observed / estimated measurements, ground stations
    covariance       -- Initial covariance and process noise providers
    decomposers      -- Cholesky and QR solvers for the innovation covariance
    filter           -- Extended Kalman filter predict / Joseph correction
    builders         -- Propagator builders exposing orbital drivers
    kalman_model     -- Process model around rebuilt reference trajectories
    semi_analytical  -- Process model around one nominal trajectory
    estimator        -- Estimators and their builder
    observer         -- Observer interface and estimation history tables
===============================================================================
"""
