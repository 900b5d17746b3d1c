"""Query definitions, variables and the remote endpoint client."""

from .definition import (
    DirectoryDefinitionStore,
    MappingDefinitionStore,
    QueryDefinition,
    QueryDefinitionStore,
    load_definition,
    parse_variables,
)
from .endpoint import (
    EndpointConfig,
    EndpointResolver,
    QueryClient,
    ResolvedEndpoint,
    extract_leaf_value,
    extract_result_sets,
    flatten_node,
    remove_index_keys,
)
from .transformers import NestedQuery, Transformer, TransformerRegistry
from .variables import execution_key, merge_variables

__all__ = [
    "DirectoryDefinitionStore",
    "EndpointConfig",
    "EndpointResolver",
    "MappingDefinitionStore",
    "NestedQuery",
    "QueryClient",
    "QueryDefinition",
    "QueryDefinitionStore",
    "ResolvedEndpoint",
    "Transformer",
    "TransformerRegistry",
    "execution_key",
    "extract_leaf_value",
    "extract_result_sets",
    "flatten_node",
    "load_definition",
    "merge_variables",
    "parse_variables",
    "remove_index_keys",
]
