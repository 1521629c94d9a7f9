"""Application core: configuration, errors, authorization, dependencies."""
