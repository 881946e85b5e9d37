DEPLOY_SAFE_VERSION = "1.4.1"
SALT_NONCE_SENTINEL = "random"

# Safe v1.4.1 canonical addresses
DEFAULT_FALLBACK_ADDRESS = "0xfd0732Dc9E303f09fCEf3a7388Ad10A83459Ec99"
DEFAULT_PROXYFACTORY_ADDRESS = "0x4e1DCf7AD4e460CfD30791CCC4F9c8a4f820ec67"
DEFAULT_SAFEL2_SINGLETON_ADDRESS = "0x29fcB43b46531BcA003ddC8FCB67FFE91900C762"
DEFAULT_SAFE_SINGLETON_ADDRESS = "0x41675C099F32341bf84BFc5382aF534df5C7461a"

# Placeholder for every unset address field (initializer target, payment
# token and receiver, gas token, refund receiver).
NOOP_ADDRESS = "0x0000000000000000000000000000000000000000"

# SafeTx defaults for fields absent from a raw transaction intent.
DEFAULT_OPERATION = 0
DEFAULT_SAFE_TX_GAS = 0
DEFAULT_BASE_GAS = 0
DEFAULT_GAS_PRICE = 0
DEFAULT_GAS_TOKEN = NOOP_ADDRESS
DEFAULT_REFUND_RECEIVER = NOOP_ADDRESS

# Safe v1.4.1 setup() function
# setup(address[],uint256,address,bytes,address,address,uint256,address)
SAFE_SETUP_FUNC_SELECTOR = "0xb63e800d"
SAFE_SETUP_FUNC_TYPES = (
    "address[]",
    "uint256",
    "address",
    "bytes",
    "address",
    "address",
    "uint256",
    "address",
)

# execTransaction(address,uint256,bytes,uint8,uint256,uint256,uint256,address,address,bytes)
SAFE_EXEC_FUNC_SELECTOR = "0x6a761202"
SAFE_EXEC_FUNC_TYPES = (
    "address",
    "uint256",
    "bytes",
    "uint8",
    "uint256",
    "uint256",
    "uint256",
    "address",
    "address",
    "bytes",
)

# approveHash(bytes32)
SAFE_APPROVE_HASH_FUNC_SELECTOR = "0xd4d9bdcd"

# SafeProxyFactory v1.4.1
# createProxyWithNonce(address,bytes,uint256)
# createChainSpecificProxyWithNonce(address,bytes,uint256)
PROXY_FACTORY_CREATE_FUNC_SELECTOR = "0x1688f0b9"
PROXY_FACTORY_CREATE_CHAIN_SPECIFIC_FUNC_SELECTOR = "0xec9e80bb"
PROXY_FACTORY_CREATE_FUNC_TYPES = ("address", "bytes", "uint256")

# EIP-712
# keccak256("EIP712Domain(uint256 chainId,address verifyingContract)")
DOMAIN_SEPARATOR_TYPEHASH = (
    "0x47e79534a245952e8b16893a336b85a3d9ea9fa8c573f3d803afb92a79469218"
)
# keccak256("SafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,uint256 baseGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce)")
SAFE_TX_TYPEHASH = "0xbb8310d486368db6bd6f849402fdd73ad53d316b5a4b2644ad6efe0f941286d8"
EIP712_SAFE_TX_TYPES = {
    "EIP712Domain": [
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "SafeTx": [
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
        {"name": "operation", "type": "uint8"},
        {"name": "safeTxGas", "type": "uint256"},
        {"name": "baseGas", "type": "uint256"},
        {"name": "gasPrice", "type": "uint256"},
        {"name": "gasToken", "type": "address"},
        {"name": "refundReceiver", "type": "address"},
        {"name": "nonce", "type": "uint256"},
    ],
}

# Signature `v` values
ECDSA_V_VALUES = (27, 28)
ETH_SIGN_V_OFFSET = 4
APPROVED_HASH_V = 1
SIGNATURE_LENGTH = 65

# Minimal Safe ABI for the calls made by the Web3 adapters.
SAFE_NONCE_ABI = [
    {
        "type": "function",
        "name": "nonce",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256", "internalType": "uint256"}],
        "stateMutability": "view",
    }
]

SYMBOL_CAUTION = "⚠"
SYMBOL_CHECK = "✔"
SYMBOL_CROSS = "✖"
