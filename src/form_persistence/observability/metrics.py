from pydantic import BaseModel, ConfigDict, Field


class PersistenceMetrics(BaseModel):
    model_config = ConfigDict(extra="forbid")

    counters: dict[str, int] = Field(
        default_factory=dict,
        description="Named counters for saves, restores and errors.",
    )

    def inc(self, key: str, n: int = 1) -> None:
        self.counters[key] = int(self.counters.get(key, 0)) + n

    def get(self, key: str) -> int:
        return int(self.counters.get(key, 0))

    def render_markdown(self) -> str:
        if not self.counters:
            return "No persistence activity yet."
        lines = ["### Form persistence"]
        for k in sorted(self.counters.keys()):
            lines.append(f"- **{k}**: {self.counters[k]}")
        return "\n".join(lines)
