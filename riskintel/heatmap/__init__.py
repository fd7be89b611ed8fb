"""Heatmap Aggregator — likelihood × impact grids over the live register or a snapshot."""
