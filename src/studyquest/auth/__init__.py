"""Bearer-token identity resolution."""
