"""Line follower simulation on line/arc tracks with PID gain tuning."""

__version__ = "0.1.0"
