"""Pipeline orchestration: the LangGraph state machine, the stream adapter and the request runner."""
