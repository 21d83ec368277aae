"""Multi-modal commute planner: drive, walk, train, PATH and bus legs stitched into timed itineraries."""

__version__ = "0.3.0"
