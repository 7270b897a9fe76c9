"""Storage building blocks used by the Store."""
