"""
Services Layer

Engine logic behind the HTTP routes:
- Accept plain values and a Session (IDs, scores, schedule windows)
- Return dataclasses or models, or raise matchday.errors.EngineError subclasses
- Do NOT depend on HTTP request/response objects
- Own their transactions: each mutating entry point commits once or not at all
"""
