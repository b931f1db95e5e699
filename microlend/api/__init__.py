"""HTTP routers for the microlend API."""
