"""REST backend: users, tokens, Sign in with Apple and todo CRUD."""
