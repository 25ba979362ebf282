"""Line classification."""
