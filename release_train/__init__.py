"""Release orchestration for npm monorepos: version, publish, backport."""
