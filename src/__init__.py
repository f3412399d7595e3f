from lda import LDA, FilteredLDA
from ctm import CTM, FilteredCTM
from ctpf import CTPF
from gpu_ctpf import GpuCTPF
from corpus import Corpus, Document, CorpusError
from data_handler import DataHandler
