"""Care Agents — AI chat pipeline for a care-coordination platform.

Architecture Overview
=====================

Every chat request names an agent persona (``clara``, ``clara-member``,
``clara-family``, ``ineke``, ``isabella``, ``lee``) and runs through one
stateless **LangGraph** pipeline:

1. **Agent Registry** — resolve the agent's model, temperature, token budget
   and base prompt from the database (short-TTL cache, fails closed).
2. **Knowledge + Context** — fetched concurrently: the agent's active
   knowledge snippets by priority, and live member / facility / company
   summaries for the ids the caller supplied.
3. **Intent Classifier** — regex scan of the latest user message for clinical
   keywords (member and family agents only).
4. **Handoff** — on a clinical match, consult the nurse agent ``ineke``
   (in-process, or a remote ``/api/agent-handoff`` when ``HANDOFF_URL`` is
   set) and quote the answer in the prompt.
   Best-effort: a failed consultation is logged and skipped.
5. **Model Invocation** — one call to the OpenAI-compatible chat gateway;
   429 / 402 / other errors are surfaced to the caller unchanged.
6. **Persistence** — conversation log row + atomic daily analytics increment;
   failures here never cost the user their reply.

Key Design Decisions
--------------------
- **Database**: Supabase tables, RPC and Auth via the ``supabase`` SDK, using
  the service-role key; the API layer checks the caller's token and roles.
- **No retries** anywhere in the request path: rate limits and quota errors
  go back to the caller, who decides when to try again.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development).

Package Structure
-----------------
- ``src/agent.py`` — LangGraph pipeline definition
- ``src/config.py`` — Centralized configuration from environment variables / SSM
- ``src/errors.py`` — Error taxonomy and HTTP status mapping
- ``src/models.py`` — Pydantic domain models
- ``src/prompts.py`` — System-prompt assembly
- ``src/server.py`` — FastAPI application
- ``src/main.py`` — CLI chat interface
- ``src/pipeline/`` — Registry, knowledge, context, classifier, personas, persistence
- ``src/services/`` — External clients (database, model gateway, handoff), cache, metrics
- ``src/api/`` — FastAPI routes, auth checks and Pydantic schemas
"""
