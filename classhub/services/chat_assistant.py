# classhub/services/chat_assistant.py
"""Chat assistants for the home page and the resources page.

Each user turn is one request to the generation backend: the prior history
followed by the new user message. Tools let the model fetch data it does not
have (the admin contact details) before it answers.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Type

from openai import AsyncOpenAI
from pydantic import BaseModel

from classhub.models.chat import AdminContact, ChatMessage, Role
from classhub.services.admin import get_admin_details

LOGGER = logging.getLogger(__name__)

CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o-mini")
MAX_TOOL_ROUNDS = 4

GENERAL_FALLBACK = "Sorry, I had trouble responding."
RESOURCES_FALLBACK = "Sorry, I am having trouble connecting. Please try again later."

GENERAL_INSTRUCTIONS = """You are a helpful assistant for a website called "ClassHub Central".
Your goal is to answer user questions about the website, its features, and how to navigate it.

Here is a summary of the website's pages:
- Home: the landing page, with a welcoming message and this chatbot.
- Login/Sign Up: where users create an account or log in. An account is needed to create a student profile or add projects.
- Student Profiles: students create and view profiles with majors, interests and social links, and can edit or delete their own.
- Project Hub: a gallery of student projects. Users add their own projects and browse the others.
- Events/Updates: a timeline of important dates, deadlines and announcements. Admins add new events.
- Resources: useful links and files such as study materials and tools, organized by category. Admins add new resources.
- Contact/Join Us: a form to send a message to the site administrator.
- Admin: a private dashboard where the administrator manages messages, views the student roster and customizes the home page.

Be friendly, concise and helpful. If you don't know the answer, say that you can't help with that question."""

RESOURCES_INSTRUCTIONS = """You are a friendly and helpful assistant for the "Resources" page of a university student hub website called ClassHub Central.

Answer questions about the resources available on the page. The resource categories are:
- Learning Platform
- Tools You Must Try
- Project Ideas
- Upcoming Tech Challenges

Guide the user to the right category when the question is about resources. If the question is not about the resources, call the getAdminContact tool, politely say you can't answer it and give the administrator's contact details."""


class AssistantError(Exception):
    """The generation backend could not produce a reply."""


class NoArguments(BaseModel):
    pass


@dataclass
class AssistantTool:
    """A function the model may call while it builds its answer."""

    name: str
    description: str
    input_model: Type[BaseModel]
    output_model: Type[BaseModel]
    handler: Callable[[BaseModel], Awaitable[Any]]

    def as_openai_tool(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_model.model_json_schema(),
            },
        }

    async def invoke(self, raw_arguments: Optional[str]) -> str:
        arguments = self.input_model.model_validate_json(raw_arguments or "{}")
        result = await self.handler(arguments)
        return self.output_model.model_validate(result).model_dump_json()


class GenerationBackend(Protocol):
    async def generate(
        self,
        messages: Sequence[ChatMessage],
        *,
        instructions: Optional[str] = None,
        tools: Sequence[AssistantTool] = (),
        temperature: Optional[float] = None,
    ) -> str: ...


_OPENAI_ROLES = {Role.USER: "user", Role.MODEL: "assistant"}


class OpenAIGenerationBackend:
    """Chat completions against any OpenAI-compatible endpoint."""

    def __init__(self, model: str = CHAT_MODEL, client: Optional[AsyncOpenAI] = None, max_tool_rounds: int = MAX_TOOL_ROUNDS):
        self.model = model
        self._client = client or AsyncOpenAI()
        self._max_tool_rounds = max_tool_rounds

    async def generate(self, messages, *, instructions=None, tools=(), temperature=None) -> str:
        payload: List[Dict[str, Any]] = []
        if instructions:
            payload.append({"role": "system", "content": instructions})
        payload.extend({"role": _OPENAI_ROLES[m.role], "content": m.content} for m in messages)

        registry = {tool.name: tool for tool in tools}
        request: Dict[str, Any] = {"model": self.model, "messages": payload}
        if registry:
            request["tools"] = [tool.as_openai_tool() for tool in tools]
        if temperature is not None:
            request["temperature"] = temperature

        for _ in range(self._max_tool_rounds + 1):
            completion = await self._client.chat.completions.create(**request)
            message = completion.choices[0].message
            tool_calls = message.tool_calls or []
            if not tool_calls:
                return message.content or ""

            payload.append({
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function.name, "arguments": call.function.arguments},
                    }
                    for call in tool_calls
                ],
            })
            for call in tool_calls:
                payload.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": await self._run_tool(registry, call.function.name, call.function.arguments),
                })

        raise AssistantError(f"no answer after {self._max_tool_rounds} tool rounds")

    async def _run_tool(self, registry: Dict[str, AssistantTool], name: str, arguments: Optional[str]) -> str:
        tool = registry.get(name)
        if tool is None:
            LOGGER.warning("Model asked for unknown tool %s", name)
            return json.dumps({"error": f"unknown tool {name}"})
        LOGGER.info("Running tool %s", name)
        return await tool.invoke(arguments)


class ChatAssistant:
    def __init__(
        self,
        backend: GenerationBackend,
        *,
        name: str,
        instructions: str,
        fallback_reply: str,
        tools: Sequence[AssistantTool] = (),
        temperature: Optional[float] = None,
    ):
        self._backend = backend
        self.name = name
        self.instructions = instructions
        self.fallback_reply = fallback_reply
        self.tools = list(tools)
        self.temperature = temperature

    async def reply(self, prompt: str, history: Sequence[ChatMessage] = ()) -> str:
        """
        Answer one user turn. Backend failures turn into the fallback reply,
        nothing is retried.
        """
        messages = [*history, ChatMessage(role=Role.USER, content=prompt)]
        try:
            text = await self._backend.generate(
                messages,
                instructions=self.instructions,
                tools=self.tools,
                temperature=self.temperature,
            )
        except Exception:
            LOGGER.exception("%s failed to answer", self.name)
            return self.fallback_reply
        return text or ""


async def _admin_contact(_: NoArguments) -> AdminContact:
    return await get_admin_details()


admin_contact_tool = AssistantTool(
    name="getAdminContact",
    description=(
        "Use this to get the contact information for the site administrator when "
        "the user asks a question that is not about the available resources."
    ),
    input_model=NoArguments,
    output_model=AdminContact,
    handler=_admin_contact,
)


def build_general_assistant(backend: GenerationBackend) -> ChatAssistant:
    return ChatAssistant(
        backend,
        name="chatbot",
        instructions=GENERAL_INSTRUCTIONS,
        fallback_reply=GENERAL_FALLBACK,
    )


def build_resources_assistant(backend: GenerationBackend) -> ChatAssistant:
    return ChatAssistant(
        backend,
        name="resources-chatbot",
        instructions=RESOURCES_INSTRUCTIONS,
        fallback_reply=RESOURCES_FALLBACK,
        tools=[admin_contact_tool],
        temperature=0.3,
    )
