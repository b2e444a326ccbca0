"""Render the candidate lineage graph to a PNG file."""

from pathlib import Path
from typing import Dict, List, Tuple

from loguru import logger

from ..models import Population, rank_key

HIGH_WEIGHT = 0.7
MEDIUM_WEIGHT = 0.4


class LineageVisualizer:
    """Lineage tree: one row per generation, edges from parents to children."""

    def __init__(self, title: str = "FPO Lineage"):
        self.title = title

    def build_graph(self, population: Population):
        """Directed graph of live candidates; retired parents appear as ghost nodes."""
        import networkx as nx

        graph = nx.DiGraph()
        for candidate in population.candidates.values():
            graph.add_node(
                candidate.id,
                generation=candidate.generation,
                weight=candidate.weight,
                retired=False,
            )
        for candidate in population.candidates.values():
            for parent_id in candidate.parents:
                if parent_id not in graph:
                    graph.add_node(
                        parent_id,
                        generation=population.retired.get(parent_id, 0),
                        weight=0.0,
                        retired=True,
                    )
                graph.add_edge(parent_id, candidate.id)
        return graph

    def layout(self, graph) -> Dict[str, Tuple[float, float]]:
        rows: Dict[int, List[str]] = {}
        for node_id, data in graph.nodes(data=True):
            rows.setdefault(data["generation"], []).append(node_id)
        max_gen = max(rows) if rows else 0
        pos = {}
        for gen, node_ids in rows.items():
            node_ids.sort()
            y = 1.0 - (gen / max(max_gen, 1))
            for i, node_id in enumerate(node_ids):
                x = 0.5 if len(node_ids) == 1 else 0.1 + (i / (len(node_ids) - 1)) * 0.8
                pos[node_id] = (x, y)
        return pos

    def render(self, population: Population, output_path: Path) -> Path:
        """Save the lineage plot and return its path."""
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
        import networkx as nx
        from matplotlib.patches import Patch

        graph = self.build_graph(population)
        pos = self.layout(graph)
        fig, ax = plt.subplots(figsize=(14, 10))

        node_colors = []
        for node_id, data in graph.nodes(data=True):
            if node_id == population.champion_id:
                color = "#9b59b6"
            elif data["retired"]:
                color = "#bdc3c7"
            elif data["weight"] >= HIGH_WEIGHT:
                color = "#2ecc71"
            elif data["weight"] >= MEDIUM_WEIGHT:
                color = "#f39c12"
            else:
                color = "#e74c3c"
            node_colors.append(color)

        nx.draw_networkx_nodes(graph, pos, node_color=node_colors, node_size=900, ax=ax, alpha=0.9)
        nx.draw_networkx_edges(
            graph, pos, edge_color="#95a5a6",
            arrows=True, arrowsize=15, width=2, ax=ax, alpha=0.6
        )
        labels = {
            node_id: f"G{data['generation']}\n{node_id[:14]}\n"
                     + ("retired" if data["retired"] else f"{data['weight']:.3f}")
            for node_id, data in graph.nodes(data=True)
        }
        nx.draw_networkx_labels(graph, pos, labels, font_size=7, font_weight="bold", ax=ax)

        best = min(population.candidates.values(), key=rank_key)
        ax.set_title(
            f"{self.title}\n"
            f"Iteration: {population.iteration} | "
            f"Candidates: {population.size} | "
            f"Champion: {population.champion_id} ({best.weight:.3f})",
            fontsize=14, fontweight="bold", pad=20
        )
        ax.legend(
            handles=[
                Patch(facecolor="#9b59b6", label="Champion"),
                Patch(facecolor="#2ecc71", label=f"Weight >= {HIGH_WEIGHT}"),
                Patch(facecolor="#f39c12", label=f"Weight {MEDIUM_WEIGHT}-{HIGH_WEIGHT}"),
                Patch(facecolor="#e74c3c", label=f"Weight < {MEDIUM_WEIGHT}"),
                Patch(facecolor="#bdc3c7", label="Retired"),
            ],
            loc="upper left", fontsize=9, framealpha=0.9
        )
        ax.axis("off")
        ax.set_xlim(-0.05, 1.05)
        ax.set_ylim(-0.05, 1.05)
        plt.tight_layout()

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=150)
        plt.close(fig)
        logger.info(f"Saved lineage plot: {output_path}")
        return output_path
