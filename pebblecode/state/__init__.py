"""Client-side bridge state: store, reducer and derived views."""
