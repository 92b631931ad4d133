"""Built-in rule document used when no valid configuration is available."""

DEFAULT_RULES = {
    "version": "1.0.0",
    "purposeHeuristics": {
        "patterns": {
            "reactComponent": {
                "conditions": ["func.type === 'react_component'"],
                "purpose": "React component",
                "confidence": 0.95,
            },
            "reactHook": {
                "conditions": ["name.startsWith('use')", "func.type === 'function'"],
                "purpose": "React hook",
                "confidence": 0.9,
            },
            "serviceLayer": {
                "conditions": ["pathParts.includes('services')"],
                "purpose": "Service layer logic",
                "confidence": 0.7,
            },
            "componentLayer": {
                "conditions": ["pathParts.includes('components')"],
                "purpose": "UI component logic",
                "confidence": 0.7,
            },
            "tauriCommand": {
                "conditions": ["name.matches('command')", "chunk.imports.includes('tauri')"],
                "purpose": "Tauri backend command",
                "confidence": 0.9,
            },
            "textEditing": {
                "conditions": ["chunk.imports.includes('tiptap')", "chunk.imports.includes('prosemirror')"],
                "purpose": "Rich text editing logic",
                "confidence": 0.95,
            },
            "fileManagement": {
                "conditions": ["pathParts.includes('services')", "name.matches('file|export|save')"],
                "purpose": "File system service",
                "confidence": 0.85,
            },
            "uiComponent": {
                "conditions": ["pathParts.includes('components')", "name.matches('modal|button|menu|bar')"],
                "purpose": "UI component logic",
                "confidence": 0.85,
            },
            "apiHandler": {
                "conditions": ["name.includes('api')", "name.includes('endpoint')"],
                "purpose": "API handler",
                "confidence": 0.85,
            },
            "dataRetrieval": {
                "conditions": ["name.includes('get')", "name.includes('fetch')"],
                "purpose": "Data retrieval",
                "confidence": 0.8,
            },
            "dataCreation": {
                "conditions": ["name.includes('create')", "name.includes('add')"],
                "purpose": "Data creation",
                "confidence": 0.8,
            },
            "dataModification": {
                "conditions": ["name.includes('update')", "name.includes('edit')"],
                "purpose": "Data modification",
                "confidence": 0.8,
            },
            "dataDeletion": {
                "conditions": ["name.includes('delete')", "name.includes('remove')"],
                "purpose": "Data deletion",
                "confidence": 0.8,
            },
            "validation": {
                "conditions": ["name.includes('validate')", "name.includes('check')"],
                "purpose": "Validation",
                "confidence": 0.75,
            },
            "dataProcessing": {
                "conditions": ["name.includes('parse')", "name.includes('format')"],
                "purpose": "Data processing",
                "confidence": 0.75,
            },
        },
        "fallback": {
            "purpose": "Utility function",
            "confidence": 0.5,
        },
    },
    "bundleHeuristics": {
        "patterns": {
            "frontend": {
                "conditions": ["pathParts.includes('web')", "pathParts.includes('src')"],
                "bundle": "frontend",
                "confidence": 0.8,
                "subPatterns": {
                    "uiComponents": {
                        "conditions": ["pathParts.includes('components')"],
                        "bundle": "ui-components",
                        "confidence": 0.9,
                    },
                },
            },
            "server": {
                "conditions": ["fileName.includes('server')", "fileName.includes('api')", "pathParts.includes('bin')"],
                "bundle": "server",
                "confidence": 0.85,
            },
            "configuration": {
                "conditions": [
                    "fileName.includes('config')",
                    "fileName.includes('setup')",
                    "fileName.endsWith('.json')",
                    "fileName.endsWith('.sh')",
                    "fileName.includes('package')",
                ],
                "bundle": "config",
                "confidence": 0.9,
            },
            "documentation": {
                "conditions": ["fileName.endsWith('.md')", "fileName.includes('doc')", "fileName.includes('readme')"],
                "bundle": "docs",
                "confidence": 0.95,
            },
        },
        "fallback": {
            "webFallback": {
                "conditions": ["pathParts.includes('web')"],
                "bundle": "frontend",
                "confidence": 0.6,
            },
            "defaultFallback": {
                "bundles": ["server", "config"],
                "confidence": 0.4,
            },
        },
    },
    "semanticTypeMapping": {
        "clusters": {
            "businessLogic": {"types": ["business_logic", "algorithm"], "clusterId": 0},
            "dataLayer": {"types": ["data_processing", "database"], "clusterId": 1},
            "apiLayer": {"types": ["api_integration", "middleware", "routing"], "clusterId": 2},
            "uiLayer": {"types": ["ui_component", "page_component", "layout_component", "hook"], "clusterId": 3},
            "utilities": {"types": ["utility", "configuration", "function", "type_definition"], "clusterId": 4},
            "testing": {"types": ["testing", "documentation", "monitoring"], "clusterId": 5},
            "infrastructure": {"types": ["error_handling", "performance", "security"], "clusterId": 6},
            "unknown": {"types": ["unknown"], "clusterId": 7},
        },
    },
}
