"""Bearer-token verification and role checks for the HTTP boundary."""
