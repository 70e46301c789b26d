"""Wellness assistant services.

- Safety Service classifies every user message before the AI sees it
- LLM Service wraps the AI backend and builds prompts
- Therapy Service orchestrates sessions and messages over HTTP
- Audit Service keeps a hash-chained record of data access
"""
