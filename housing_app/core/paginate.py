from typing import Sequence


class PaginatePage:
    def paginate(self, items: Sequence, page: int, per_page: int) -> list:
        start = (page - 1) * per_page
        end = start + per_page
        return list(items[start:end])


paginator = PaginatePage()
