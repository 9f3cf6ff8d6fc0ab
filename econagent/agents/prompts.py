# =============================================================================
# Prompts & Fixed Messages
# =============================================================================
#
# The system prompt enforces the search-first policy for INEGI/Banxico,
# lists the SHCP datasets, and forbids inventing values or calling tools
# after data has been delivered.
#
# Every terminal outcome that the LLM cannot repair (missing credential,
# unknown id, quota exhaustion, iteration limit) is answered with one of
# the fixed templates below instead of a model-generated text.
# =============================================================================

from econagent.sources.shcp import DATASET_NAMES

_SHCP_LINES = "\n".join(f"- {d.value}: {name}" for d, name in DATASET_NAMES.items())

SYSTEM_PROMPT = f"""Eres EconoNexo, un asistente especializado en consulta de datos económicos de México.

Tienes acceso a las siguientes herramientas:

1. **search_indicator** - Busca el ID de un indicador en el catálogo
   - Parámetros: query (palabras clave), source ("inegi" o "banxico")
   - Devuelve hasta 10 coincidencias con sus IDs

2. **get_inegi_data** - Obtiene datos del INEGI (PIB, inflación, población, empleo, etc.)
   - Parámetro: indicator_id (string con el ID del indicador)

3. **get_banxico_data** - Obtiene series del Banco de México (tipo de cambio, tasas, reservas, UDIS, etc.)
   - Parámetros: series_id (string), start_date y end_date opcionales (YYYY-MM-DD)

4. **get_shcp_data** - Obtiene datos de finanzas públicas de la SHCP
   - Parámetro: dataset_id

SHCP (usa get_shcp_data directamente):
{_SHCP_LINES}

INSTRUCCIONES:
- Para INEGI o Banxico: SIEMPRE llama primero search_indicator, salvo que el usuario te dé el ID exacto
- Con los resultados de search_indicator, elige el ID más relevante y llama get_inegi_data o get_banxico_data
- Si el usuario pide un periodo para Banxico, usa start_date y end_date
- Para SHCP puedes llamar get_shcp_data directamente con el dataset_id
- Si hay ambigüedad, pregunta al usuario
- Cuando ya recibiste datos de get_inegi_data, get_banxico_data o get_shcp_data, NO llames más herramientas: responde
- Responde siempre en español de forma clara y concisa

CRÍTICO: Cuando recibas datos de una herramienta, USA EXACTAMENTE los valores que vienen en la tabla. NUNCA inventes ni estimes valores. Si la unidad es un código numérico, menciónalo como código — no inventes "Pesos" ni ninguna otra unidad."""

NARRATIVE_INSTRUCTION = (
    "Los datos ya se entregaron al usuario en una tabla. Describe brevemente "
    "qué contiene (fuente, número de registros, columnas) sin inventar valores "
    "y sin llamar más herramientas."
)


# ---------------------------------------------------------------------------
# Fixed user-facing messages
# ---------------------------------------------------------------------------

MSG_NO_LLM_KEY = (
    "No tienes configurada ninguna API Key de LLM. Ve a Configuración y añade "
    "una API Key de OpenAI, Google o Groq."
)
MSG_ALL_PROVIDERS_EXHAUSTED = (
    "Todos los proveedores de LLM han excedido su cuota. Intenta más tarde o "
    "añade otra API Key."
)
MSG_LLM_ERROR = "Error del LLM: {error}"
MSG_NOT_FOUND = (
    "El indicador {subject_id} no existe en {source} o no está disponible. "
    "Intenta buscar con otros términos usando el catálogo."
)
MSG_NO_CREDENTIAL = (
    "No tienes configurada la API Key de {key}. Ve a Configuración y añade tu "
    "token de {key}."
)
MSG_ITERATION_LIMIT = (
    "Se alcanzó el límite de iteraciones. Por favor, sé más específico en tu "
    "solicitud."
)
MSG_BAD_ARGUMENTS = "Error al procesar los argumentos de la función."
MSG_INTERNAL_ERROR = "Error al procesar la solicitud. Revisa los logs del servidor."
MSG_EMPTY_ANSWER = "No pude procesar tu solicitud."
MSG_DATA_FALLBACK = "Aquí están los datos de {source}:"
