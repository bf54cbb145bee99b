"""Pure kernel domain: clock abstraction and currency registry."""
