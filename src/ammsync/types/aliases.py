type BlockNumber = int
type ChainId = int
