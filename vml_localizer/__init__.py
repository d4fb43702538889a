"""Camera line-segment particle correction against a tiled vector-map cost map."""
