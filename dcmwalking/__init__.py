"""DCM-based walking control: MPC and reactive controllers, a CoM model, profiling, dataset logging and joypad input."""

__version__ = "0.1.0"