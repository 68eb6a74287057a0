"""Leave module — stand-alone leave requests."""
