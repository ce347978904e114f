"""Cross-cutting primitives shared by the membership components."""
