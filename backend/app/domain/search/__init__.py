"""Memorial search domain: query building, ranking, suggestions and search logs."""
