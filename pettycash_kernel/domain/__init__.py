"""Pure domain layer: value objects, balance rules, workflows, clock."""
