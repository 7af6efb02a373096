"""Rolling-window generation, accuracy resolution and tick scheduling."""
