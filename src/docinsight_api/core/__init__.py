"""Authentication primitives shared by feature routers."""
