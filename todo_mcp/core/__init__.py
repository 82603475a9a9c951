"""Tool catalogue, argument validation and the todo-for-ai API client."""
