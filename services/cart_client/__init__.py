"""Client-side mirror of the server cart."""
