"""Shared fixtures for codeindex tests."""

import pytest

from codeindex.indexing.chunker import FunctionChunker
from codeindex.indexing.classifier import classify_unit
from codeindex.indexing.rules import RuleConfigManager, default_rule_config


SERVICE_SOURCE = (
    "import axios from 'axios';\n"
    "import { User } from '../types';\n"
    "\n"
    "export interface UserQuery {\n"
    "  id: string;\n"
    "}\n"
    "\n"
    "export async function fetchUserProfile(id) {\n"
    "  const response = await axios.get(`/users/${id}`);\n"
    "  return normalizeUser(response.data);\n"
    "}\n"
    "\n"
    "export const deleteSession = async (token) => {\n"
    "  await axios.delete('/session', { headers: { token } });\n"
    "};\n"
)

COMPONENT_SOURCE = (
    "import React, { useState } from 'react';\n"
    "\n"
    "export function UserCard(props) {\n"
    "  const [open, setOpen] = useState(false);\n"
    "  return <div onClick={() => setOpen(!open)}>{props.name}</div>;\n"
    "}\n"
    "\n"
    "function useToggle(initial) {\n"
    "  const [value, setValue] = useState(initial);\n"
    "  return [value, () => setValue(!value)];\n"
    "}\n"
)

CLASS_SOURCE = (
    "export class DraftStore {\n"
    "  constructor(db) {\n"
    "    this.db = db;\n"
    "  }\n"
    "\n"
    "  async saveDraft(draft) {\n"
    "    if (!draft) {\n"
    "      return null;\n"
    "    }\n"
    "    return this.db.put(draft.id, draft);\n"
    "  }\n"
    "}\n"
)


@pytest.fixture
def chunker():
    return FunctionChunker()


@pytest.fixture
def default_config():
    return default_rule_config()


@pytest.fixture
def rule_manager():
    """Manager with no backing file, serving the built-in rules."""
    return RuleConfigManager(config_path=None)


@pytest.fixture
def classify(chunker, default_config):
    """Extract and classify source text with the built-in rules."""
    def _classify(source, file_path, config=None):
        raw_units = chunker.extract(source, file_path)
        return [classify_unit(raw, config or default_config) for raw in raw_units]
    return _classify


@pytest.fixture
def sample_project(tmp_path):
    """A small JS/TS project on disk; returns the list of file paths."""
    services = tmp_path / "src" / "services"
    components = tmp_path / "web" / "src" / "components"
    stores = tmp_path / "src" / "stores"
    for directory in (services, components, stores):
        directory.mkdir(parents=True)

    files = [
        services / "userService.ts",
        components / "UserCard.tsx",
        stores / "draftStore.js",
    ]
    files[0].write_text(SERVICE_SOURCE)
    files[1].write_text(COMPONENT_SOURCE)
    files[2].write_text(CLASS_SOURCE)
    return [str(f) for f in files]
