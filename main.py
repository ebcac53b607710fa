import os

# FORCE NUMPY TO USE 1 THREAD PER PROCESS
os.environ["OMP_NUM_THREADS"] = "1"
os.environ["OPENBLAS_NUM_THREADS"] = "1"
os.environ["MKL_NUM_THREADS"] = "1"

import argparse
import sys
import time

import analysis_utils
import block_filling
import block_linking_greedy
import epsilon_estimation
import frag_file_loader
import genotype_polishing
import hap_output
import local_clustering
import vcf_data_loader
from fragment_store import Frag, FragmentStore, layout_windows
from phasing_config import PhasingConfig

__version__ = "0.1.0"


#%%
def restrict_to_range(all_frags, first_site, last_site):
    """
    Fragments cut down to their calls in first_site..last_site, dropping
    fragments with no calls there
    """
    restricted = []
    for frag in all_frags:
        calls = frag.calls_in(first_site, last_site + 1)
        if len(calls) == 0:
            continue
        if len(calls) == len(frag):
            restricted.append(frag)
        else:
            restricted.append(Frag(frag.id_name, frag.counter_id, calls))
    return restricted

def run_pipeline(all_frags, config, genotype_dict=None, verbose=True):
    """
    Phase a list of fragments.

    Args:
        all_frags: list of Frag.
        config: validated PhasingConfig.
        genotype_dict: {site: {allele: count}} genotypes; enables polishing.
        verbose: print progress and timings.

    Returns:
        dict with keys
            'hap_block': final HapBlock (polished if genotypes were given),
            'unpolished_block': HapBlock before polishing,
            'partition': list of ploidy sets of fragment indices,
            'store': the FragmentStore the indices refer to,
            'epsilon', 'block_length', 'windows', 'scores',
            'first_site', 'last_site'.
    """
    polish = bool(genotype_dict)
    if genotype_dict is None:
        genotype_dict = {}

    store = FragmentStore(all_frags)
    genome_length = store.genome_length()

    if config.site_range is not None:
        (first_site, last_site) = config.site_range
        last_site = min(last_site, genome_length)
        store = FragmentStore(restrict_to_range(store, first_site, last_site))
    else:
        (first_site, last_site) = (1, genome_length)

    if config.block_length is not None:
        length_block = config.block_length
    else:
        length_block = local_clustering.get_block_length(store)
    binomial_factor = local_clustering.get_binomial_factor(store)

    if verbose:
        print(f"Median read length is {store.average_fragment_length(0.5)}")
        print(f"Binomial adjustment factor is {binomial_factor}")
        print(f"Length of genome is {genome_length}")
        print(f"Length of each block is {length_block}")

    windows = layout_windows(first_site, last_site, length_block, overlap=config.overlap)

    if config.epsilon is not None:
        epsilon = config.epsilon
    else:
        start_t = time.time()
        epsilon = epsilon_estimation.estimate_epsilon(
            len(windows), config.num_epsilon_attempts, config.ploidy, store,
            length_block, config.initial_epsilon,
            binomial_factor=binomial_factor,
            num_processes=config.threads,
            first_site=first_site,
            verbose=verbose)
        if verbose:
            print(f"Time taken estimating epsilon {time.time()-start_t:.2f}s")
    if verbose:
        print(f"Estimated epsilon is {epsilon}")

    start_t = time.time()
    (scores, parts) = local_clustering.generate_hap_blocks_all(
        windows, config.ploidy, store, epsilon,
        genotype_dict=genotype_dict,
        polish=polish,
        num_iters=config.num_iters_optimizing,
        binomial_factor=binomial_factor,
        num_processes=config.threads,
        verbose=verbose)
    if verbose:
        print(f"Time taken local clustering {time.time()-start_t:.2f}s")

    if config.fill:
        start_t = time.time()
        (parts, scores) = block_filling.replace_with_filled_blocks(
            scores, parts, config.iqr_factor, length_block, store, epsilon,
            binomial_factor=binomial_factor,
            genotype_dict=genotype_dict,
            polish=polish,
            num_iters=config.num_iters_optimizing,
            first_site=first_site,
            overlap=config.overlap,
            return_scores=True,
            verbose=verbose)
        if verbose:
            print(f"Time taken block filling {time.time()-start_t:.2f}s")

    start_t = time.time()
    final_part = block_linking_greedy.link_blocks_greedy(parts, store)

    unpolished_block = analysis_utils.hap_block_from_partition(final_part, store)
    if polish:
        (final_block, num_changes) = genotype_polishing.polish_using_vcf(
            genotype_dict, unpolished_block, range(first_site, last_site + 1),
            return_num_changes=True)
        if verbose:
            print(f"Polishing changed {num_changes} calls")
    else:
        final_block = unpolished_block
    if verbose:
        print(f"Time taken linking, polishing blocks {time.time()-start_t:.2f}s")

    return {
        "hap_block": final_block,
        "unpolished_block": unpolished_block,
        "partition": final_part,
        "store": store,
        "epsilon": epsilon,
        "block_length": length_block,
        "windows": windows,
        "scores": scores,
        "first_site": first_site,
        "last_site": last_site,
    }

#%%
def build_parser():
    parser = argparse.ArgumentParser(
        prog="polyhap",
        description="Local polyploid phasing from long read fragments.",
        epilog="Examples:\n"
               "  polyhap -b reads.bam -v variants.vcf -p 3 -o results.txt\n"
               "  polyhap -f fragments.frags -p 4 -o unpolished_results.txt\n"
               "  polyhap -f fragments.frags -v variants.vcf -p 4 -o polished_results.txt",
        formatter_class=argparse.RawDescriptionHelpFormatter)

    parser.add_argument("-f", "--frag", metavar="FRAGFILE", help="Input a fragment file.")
    parser.add_argument("-b", "--bam", metavar="BAMFILE", help="Input a bam file.")
    parser.add_argument("-v", "--vcf", metavar="VCFFILE",
                        help="Input a VCF: mandatory with a BAM file; enables genotype polishing.")
    parser.add_argument("-p", "--ploidy", type=int, required=True, help="Ploidy of organism.")
    parser.add_argument("-t", "--threads", type=int, default=10,
                        help="Number of worker processes (default: 10).")
    parser.add_argument("-o", "--output", default="polyhap_output.txt",
                        help="Name of output file (default: polyhap_output.txt).")
    parser.add_argument("-P", "--partition-output", metavar="PARTFILE",
                        help="Also write the reads assigned to each haplotype to this file.")
    parser.add_argument("-e", "--epsilon", type=float,
                        help="Fragment error rate; estimated from the data if not given.")
    parser.add_argument("-r", "--range", metavar="START-END",
                        help="Only phase variant sites START to END (inclusive, 1-based).")
    parser.add_argument("-w", "--window-length", type=int,
                        help="Window length in variant sites (default: from fragment lengths).")
    parser.add_argument("--overlap", type=int, default=0,
                        help="Sites each window overlaps the next (default: 0).")
    parser.add_argument("--outlier-factor", type=float, default=3.0,
                        help="IQR factor for detecting low scoring windows (default: 3.0).")
    parser.add_argument("--num-iters", type=int, default=10,
                        help="Optimization rounds per window (default: 10).")
    parser.add_argument("--epsilon-attempts", type=int, default=20,
                        help="Windows sampled to estimate the error rate (default: 20).")
    parser.add_argument("--no-fill", action="store_true",
                        help="Do not repair low scoring windows.")
    parser.add_argument("--sample", help="VCF sample to polish with (default: first sample).")
    parser.add_argument("--contig", help="Contig to phase (default: first contig in the VCF).")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.bam and args.frag:
        parser.error("If using frag as input, BAM file should not be specified")
    if args.bam and not args.vcf:
        parser.error("Must input VCF file if using BAM file")
    if not args.bam and not args.frag:
        parser.error("Either a fragment file (-f) or a BAM file (-b) is required")

    try:
        config = PhasingConfig.from_args(args)
    except ValueError as e:
        parser.error(str(e))

    print("Reading inputs (BAM/VCF/frags).")
    start_t = time.time()
    if args.bam:
        all_frags = vcf_data_loader.get_frags_from_bamvcf(args.vcf, args.bam, contig=config.contig)
    else:
        all_frags = frag_file_loader.get_frags_container(args.frag)

    genotype_dict = None
    snp_to_genome_pos = []
    if args.vcf:
        (snp_to_genome_pos, genotype_dict, vcf_ploidy) = vcf_data_loader.get_genotypes_from_vcf(
            args.vcf, sample=config.sample, contig=config.contig)
        if vcf_ploidy != config.ploidy:
            raise ValueError(f"VCF file ploidy {vcf_ploidy} doesn't match input ploidy {config.ploidy}")
    print(f"Time taken reading inputs {time.time()-start_t:.2f}s")

    if len(all_frags) == 0:
        print("No fragments with variant calls found, nothing to phase.", file=sys.stderr)
        return 1

    result = run_pipeline(all_frags, config, genotype_dict=genotype_dict)

    start_t = time.time()
    hap_output.write_blocks_to_file(
        args.output, [result["hap_block"]], [result["last_site"]],
        snp_to_genome_pos, first_site=result["first_site"])
    if args.partition_output:
        hap_output.write_partition_to_file(args.partition_output, result["partition"], result["store"])
    print(f"Time taken writing blocks to {args.output} : {time.time()-start_t:.2f}s")

    return 0

if __name__ == "__main__":
    sys.exit(main())
