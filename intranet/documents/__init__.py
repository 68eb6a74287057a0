"""Documents module — drafts, approval policy, workflow and labels."""
