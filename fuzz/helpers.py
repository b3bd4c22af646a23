import atheris


class EnhancedDataProvider(atheris.FuzzedDataProvider):
    def ConsumeRandomBytes(self, limit: int = 4096) -> bytes:
        return self.ConsumeBytes(self.ConsumeIntInRange(0, min(limit, self.remaining_bytes())))

    def ConsumeRandomString(self, limit: int = 256) -> str:
        return self.ConsumeUnicodeNoSurrogates(self.ConsumeIntInRange(0, min(limit, self.remaining_bytes())))

    def ConsumeToken(self, limit: int = 32) -> str:
        alphabet = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_."
        length = self.ConsumeIntInRange(1, limit)
        return "".join(alphabet[self.ConsumeIntInRange(0, len(alphabet) - 1)] for _ in range(length))
