from withdrawdesk.domain.models.transfer import Batch, TransferItem


def make_batches(items: list[TransferItem], max_items_per_batch: int) -> list[Batch]:
    """Split items into consecutive batches of at most `max_items_per_batch`, keeping input order."""
    if max_items_per_batch < 1:
        raise ValueError(f"max_items_per_batch must be >= 1, got {max_items_per_batch}")
    return [
        Batch(index=n + 1, items=items[start:start + max_items_per_batch])
        for n, start in enumerate(range(0, len(items), max_items_per_batch))
    ]
