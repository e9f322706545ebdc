"""External collaborators: database, Shopify Admin API, text generation."""
