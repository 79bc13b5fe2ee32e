"""SolTap backend API."""
