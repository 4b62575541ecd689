from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    db_host: str = "localhost"
    db_port: int = 54377
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_name: str = "withdrawdesk"
    debug: bool = True
    db_create_schema: bool = False  # create missing tables at startup (no migration tool)

    # Solana
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    solana_signer_private_key: str = ""  # base58 keypair of the delegate / fee payer
    solana_max_items_per_batch: int = 25

    # EVM (Permit2)
    evm_rpc_url: str = "https://eth.llamarpc.com"
    evm_chain_id: int = 1
    permit2_address: str = "0x000000000022D473030F116dDEE9F6B43aC78BA3"
    evm_signer_private_key: str = ""
    evm_max_items_per_batch: int = 50
    evm_receipt_poll_attempts: int = 60
    evm_receipt_poll_interval: float = 2.0

    # Tron
    tron_api_url: str = "https://api.trongrid.io"
    tron_api_key: str = ""
    tron_batch_contract: str = ""
    tron_fee_limit: int = 150_000_000  # sun
    tron_max_items_per_batch: int = 40
    tron_receipt_poll_attempts: int = 60
    tron_receipt_poll_interval: float = 2.0

    # Execution policy
    max_retries: int = 3
    retry_base_delay: float = 1.0  # seconds, multiplied by attempt number
    batch_delay: float = 1.2  # seconds between batch submissions
    retry_deterministic_errors: bool = True
    delegation_check_concurrency: int = 4
    delegation_check_interval: float = 0.2
    rpc_rate_per_second: float = 5.0

    @property
    def database_url(self) -> str:
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    class Config:
        env_file = ".env"


settings = Settings()
