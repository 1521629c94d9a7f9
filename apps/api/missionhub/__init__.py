"""Mission lifecycle and escrow payment API."""
