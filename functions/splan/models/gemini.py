# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import time
import logging
from typing import Sequence, Tuple

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
QUERY_RESPONSE_MAX_OUTPUT_TOKENS = 2000

# Gemini names the assistant side of a conversation "model".
_ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiInvalidResponseException(Exception):
    pass


class GeminiClient:
    """Thin wrapper over google-genai for text generation."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        if not api_key:
            raise ValueError("A Gemini API key is required")
        self.model = model
        self._client = genai.Client(api_key=api_key)

    def call_predict(
        self,
        query: str,
        *,
        temperature: float = 0.7,
        system_instruction: str | None = None,
    ) -> str:
        """Single-turn prompt. Raises GeminiInvalidResponseException on an empty reply."""
        return self._generate(query, temperature, system_instruction)

    def call_chat(
        self,
        history: Sequence[Tuple[str, str]],
        message: str,
        *,
        temperature: float = 0.7,
        system_instruction: str | None = None,
    ) -> str:
        """
        Multi-turn prompt.

        Args:
            history: Earlier (role, content) pairs, oldest first. Roles are
                "user" or "assistant".
            message: The new user message.
        """
        contents = [
            types.Content(role=_ROLE_MAP.get(role, "user"), parts=[types.Part(text=text)])
            for role, text in history
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=message)]))
        return self._generate(contents, temperature, system_instruction)

    def _generate(self, contents, temperature: float, system_instruction: str | None) -> str:
        start_time = time.time()
        response = self._client.models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(
                temperature=temperature,
                max_output_tokens=QUERY_RESPONSE_MAX_OUTPUT_TOKENS,
                system_instruction=system_instruction,
            ),
        )
        logger.debug("Gemini call took %.2fs", time.time() - start_time)
        if not response.text:
            raise GeminiInvalidResponseException()
        return response.text
