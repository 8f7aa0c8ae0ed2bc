from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from archeohub.config import MAX_SOURCES, Settings, configure_logging, get_settings
from archeohub.prompts import build_system_prompt, build_user_prompt
from archeohub.schemas import ChatOptions, ChatRequest, ChatResponse, HealthResponse
from archeohub.services.llm import CompletionClient, LLMError
from archeohub.services.web_search import WebSearchClient

ALLOWED_METHODS = "GET,POST,OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"


def apply_cors(response: Response, origin: str) -> Response:
    response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
    response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
    return response


def create_app(
    settings: Optional[Settings] = None,
    completion: Optional[CompletionClient] = None,
    search: Optional[WebSearchClient] = None,
) -> FastAPI:
    """
    Build the ArcheoHub app. `completion` and `search` default to the real
    OpenAI / Bing clients; anything with the same `complete` / `search`
    methods can be passed instead.
    """
    settings = settings or get_settings()
    completion = completion or CompletionClient(settings)
    search = search or WebSearchClient(settings)
    configure_logging(settings.log_level)

    app = FastAPI(title="ArcheoHub")
    app.state.settings = settings
    app.state.completion = completion
    app.state.search = search

    # ====== CORS on every response, bare 200 for preflight ======
    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=200)
        else:
            response = await call_next(request)
        return apply_cors(response, settings.frontend_origin)

    # ====== Error envelope: {"error": "..."} ======
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        bad_options = [e for e in errors if "options" in e.get("loc", ())]
        if bad_options and len(bad_options) == len(errors):
            loc = ".".join(str(p) for p in bad_options[0]["loc"][1:])
            message = f"Invalid {loc}: {bad_options[0]['msg']}"
        else:
            message = "Missing query"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        # Runs outside the middleware stack, so CORS is applied here again
        logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
        response = JSONResponse(status_code=500, content={"error": str(exc) or "internal error"})
        return apply_cors(response, settings.frontend_origin)

    # ====== Chat page ======
    @app.get("/", response_class=HTMLResponse)
    def index() -> HTMLResponse:
        return HTMLResponse(content=INDEX_HTML)

    # ====== /api/chat ======
    @app.post("/api/chat", response_model=ChatResponse)
    def chat(req: ChatRequest) -> ChatResponse:
        question = req.question()
        if not question:
            raise HTTPException(status_code=400, detail="Missing query")
        if req.uses_legacy_field:
            logger.warning("Request used legacy 'prompt' field, send 'query' instead")

        options = req.options or ChatOptions()
        try:
            sources = list(search.search(question))[:MAX_SOURCES] if options.include_sources else []
            system_prompt = build_system_prompt(options)
            user_prompt = build_user_prompt(question, sources)
            text = completion.complete(system_prompt, user_prompt)
        except LLMError as e:
            raise HTTPException(status_code=500, detail=str(e))
        except Exception as e:
            logger.exception("Chat request failed")
            raise HTTPException(status_code=500, detail=str(e) or "internal error")

        logger.info("Answered with {} source(s), {} chars", len(sources), len(text))
        return ChatResponse(text=text, sources=sources)

    @app.get("/api/health", response_model=HealthResponse)
    def health_check() -> HealthResponse:
        return HealthResponse(ok=True, timestamp=datetime.now(timezone.utc).isoformat())

    return app


INDEX_HTML = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8"/>
    <title>ArcheoHub</title>
    <style>
        * { box-sizing: border-box; }
        body {
            margin: 0;
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
            background: #f5f5f5;
            color: #111;
        }
        .app { max-width: 860px; margin: 0 auto; min-height: 100vh; display: flex; flex-direction: column; }
        header { padding: 16px 24px; background: #111; color: #fafafa; }
        header h1 { margin: 0; font-size: 20px; }
        header p { margin: 4px 0 0; font-size: 12px; opacity: 0.8; }
        .messages {
            flex: 1;
            margin: 16px 24px 8px;
            padding: 12px;
            background: white;
            border: 1px solid #e5e5e5;
            border-radius: 12px;
            overflow-y: auto;
            max-height: calc(100vh - 200px);
        }
        .empty { text-align: center; padding: 32px 16px; color: #999; font-size: 14px; }
        .msg { margin-bottom: 10px; display: flex; flex-direction: column; max-width: 80%; }
        .msg.user { margin-left: auto; align-items: flex-end; }
        .msg.assistant { margin-right: auto; align-items: flex-start; }
        .bubble { padding: 10px 12px; border-radius: 12px; font-size: 14px; line-height: 1.4; white-space: pre-wrap; }
        .msg.user .bubble { background: #111; color: white; }
        .msg.assistant .bubble { background: #f0f0f0; }
        .msg.error .bubble { background: #fff0f0; border: 1px solid #e0a0a0; }
        .sources { font-size: 12px; margin: 4px 0 0; padding-left: 18px; }
        .sources a { color: #444; }
        .input { display: flex; gap: 8px; padding: 8px 24px 16px; }
        .input input { flex: 1; padding: 10px 12px; border-radius: 10px; border: 1px solid #ccc; font-size: 14px; }
        .input button { padding: 10px 16px; border-radius: 10px; border: none; background: #111; color: white; cursor: pointer; }
        .input button:disabled { opacity: 0.6; cursor: not-allowed; }
    </style>
</head>
<body>
    <div class="app">
        <header>
            <h1>ArcheoHub</h1>
            <p>Ask about artifacts, excavations or history. Answers may include live web sources.</p>
        </header>
        <div id="messages" class="messages">
            <div class="empty">Welcome to ArcheoHub. Ask a question below.</div>
        </div>
        <div class="input">
            <input id="query" placeholder="Ask a question (Enter to send)"/>
            <button id="send" onclick="send()">Send</button>
        </div>
    </div>

    <script>
        const messagesEl = document.getElementById('messages');
        const queryEl = document.getElementById('query');
        const sendBtn = document.getElementById('send');

        function appendMessage(role, text, sources, isError) {
            const empty = messagesEl.querySelector('.empty');
            if (empty) empty.remove();

            const msg = document.createElement('div');
            msg.className = 'msg ' + role + (isError ? ' error' : '');

            const bubble = document.createElement('div');
            bubble.className = 'bubble';
            bubble.textContent = text;
            msg.appendChild(bubble);

            if (sources && sources.length > 0) {
                const list = document.createElement('ol');
                list.className = 'sources';
                for (const s of sources) {
                    const item = document.createElement('li');
                    const link = document.createElement('a');
                    link.href = s.url;
                    link.target = '_blank';
                    link.rel = 'noopener';
                    link.textContent = s.title || s.url;
                    item.appendChild(link);
                    list.appendChild(item);
                }
                msg.appendChild(list);
            }

            messagesEl.appendChild(msg);
            messagesEl.scrollTop = messagesEl.scrollHeight;
        }

        async function send() {
            const query = queryEl.value.trim();
            if (!query || sendBtn.disabled) return;

            appendMessage('user', query);
            queryEl.value = '';
            sendBtn.disabled = true;

            try {
                const res = await fetch('/api/chat', {
                    method: 'POST',
                    headers: { 'Content-Type': 'application/json' },
                    body: JSON.stringify({ query })
                });
                const data = await res.json();
                if (!res.ok) {
                    appendMessage('assistant', data.error || 'Sorry, an unexpected error occurred.', [], true);
                } else {
                    appendMessage('assistant', data.text || 'No response text.', data.sources || [], false);
                }
            } catch (err) {
                appendMessage('assistant', 'Could not reach the server: ' + err, [], true);
            } finally {
                sendBtn.disabled = false;
                queryEl.focus();
            }
        }

        queryEl.addEventListener('keydown', function(e) {
            if (e.key === 'Enter' && !e.shiftKey) {
                e.preventDefault();
                send();
            }
        });
    </script>
</body>
</html>
"""


app = create_app()


# ====== Run directly: python -m archeohub.main ======
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "archeohub.main:app",
        host="127.0.0.1",
        port=9000,
        reload=True,
    )
