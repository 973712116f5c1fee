"""Build-descriptor documents and the markers attached to their nodes."""
