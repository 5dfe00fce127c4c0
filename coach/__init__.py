"""
Compass Coach - turn orchestration for AI coaching conversations
=================================================================

One request = one turn:
1. Identity and profile
2. Persona resolution (fixed per conversation)
3. Optional crisis / sentiment classification
4. Layered context assembly
5. Gemini completion with a single model fallback
6. Background memory extraction and engagement tracking
"""
