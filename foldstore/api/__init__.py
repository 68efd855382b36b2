"""HTTP surfaces: pipeline push endpoints and the edge API."""
