"""
Foreign-key dependency analysis between tables
"""

import networkx as nx
from typing import Dict, List

from ..database.models import TableInfo


class SchemaAnalyzer:
    """Build a parent -> child graph from foreign keys and order tables by it"""

    def __init__(self):
        self.relationship_graph = nx.DiGraph()

    def build_graph(self, tables: Dict[str, TableInfo]) -> nx.DiGraph:
        """Nodes are table names; an edge points from the referenced table to its child"""
        self.relationship_graph.clear()

        for table_name in tables:
            self.relationship_graph.add_node(table_name)

        for table_name, info in tables.items():
            for fk in info.foreign_keys:
                if fk.referenced_table == table_name:
                    # self references never block an insert order
                    continue
                self.relationship_graph.add_edge(fk.referenced_table, table_name, column=fk.column)

        return self.relationship_graph

    def insertion_order(self, tables: List[str]) -> List[str]:
        """Order the given tables parents first; cycles keep the given order"""
        position = {name: i for i, name in enumerate(tables)}
        subgraph = nx.DiGraph()
        subgraph.add_nodes_from(tables)
        subgraph.add_edges_from(
            (parent, child) for parent, child in self.relationship_graph.edges
            if parent in position and child in position
        )
        try:
            return list(nx.lexicographical_topological_sort(subgraph, key=lambda name: position[name]))
        except nx.NetworkXUnfeasible:
            return list(tables)
