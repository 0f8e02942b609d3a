"""HTTP implementations of the route resolver and location fetcher."""
