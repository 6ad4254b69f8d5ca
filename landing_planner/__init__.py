"""Landing site detection, landing waypoint generation, node wiring and trajectory simulation."""

__version__ = "0.1.0"

__all__ = [
    "grid",
    "landing_node",
    "safe_landing_planner",
    "setpoints",
    "trajectory_simulator",
    "visualization",
    "waypoint_generator",
]