"""eSawitKu plantation-management API service."""
