"""ripple: propagate a dependency update across a content-addressed package tree."""
