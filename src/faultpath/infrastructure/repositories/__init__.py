"""Read-side repositories with typed query filters."""
